"""Load prompt files from this directory and map intents to templates."""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from concierge.domain.intent import Intent

_DIR = Path(__file__).parent

MESSAGE_PLACEHOLDER = "{{message}}"

# intent -> (template name, user prompt template); anything else uses "faq"
_INTENT_TEMPLATES: dict[str, tuple[str, str]] = {
    "availability": ("availability", "Guest question: {{message}}"),
    "pricing": ("pricing", "Guest question: {{message}}"),
    "check_in": ("check_in", "Guest question: {{message}}"),
    "amenities": ("amenities", "Guest question: {{message}}"),
    "local_info": ("local_info", "Guest question: {{message}}"),
    "cancellation": ("cancellation", "Guest question: {{message}}"),
    "complaint": ("complaint", "Guest message: {{message}}"),
}
_FAQ = ("faq", "Guest question: {{message}}")


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    system_prompt: str
    user_prompt_template: str
    temperature: float = 0.7
    max_tokens: int = 512
    intent: Intent | None = None


@dataclass(frozen=True)
class BuiltPrompt:
    system: str
    user: str


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """Load a prompt by name (without extension). Returns the text stripped."""
    return (_DIR / f"{name}.txt").read_text(encoding="utf-8").strip()


@lru_cache(maxsize=None)
def get_prompt_by_intent(intent: Intent) -> PromptTemplate:
    name, user_template = _INTENT_TEMPLATES.get(intent, _FAQ)
    return PromptTemplate(
        name=name,
        system_prompt=f"{load_prompt('base')}\n\n{load_prompt(name)}",
        user_prompt_template=user_template,
        intent=intent if name != "faq" else "other",
    )


def build_prompt(intent: Intent, message: str, context_text: str) -> BuiltPrompt:
    """System prompt with the CONTEXT block appended; user prompt with the message."""
    template = get_prompt_by_intent(intent)
    system = (
        f"{template.system_prompt}\n\n{load_prompt('multilingual')}"
        f"\n\nCONTEXT:\n{context_text}"
    )
    user = template.user_prompt_template.replace(MESSAGE_PLACEHOLDER, message, 1)
    return BuiltPrompt(system=system, user=user)
