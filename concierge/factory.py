import os

from concierge.config import AIConfig
from concierge.domain.generation import GenerationProvider
from concierge.orchestrator import Orchestrator, OrchestratorConfig
from concierge.pipeline import Pipeline


def create_provider(name: str, config: AIConfig | None = None) -> GenerationProvider:
    """
    Factory: create a generation backend by name.

    API keys and models come from the config, which defaults to the
    environment.  Raises ValueError for unknown names.
    """
    config = config or AIConfig.from_env()

    if name == "gemini":
        from concierge.adapters.gemini_provider import GeminiProvider

        return GeminiProvider(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            timeout=config.provider_timeout,
        )

    if name == "claude":
        from concierge.adapters.claude_provider import ClaudeProvider

        return ClaudeProvider(
            api_key=config.anthropic_api_key,
            model=config.claude_model,
            timeout=config.provider_timeout,
        )

    if name == "simulator":
        from concierge.adapters.simulator_provider import SimulatorProvider

        return SimulatorProvider()

    raise ValueError(f"Unknown generation provider: {name!r}")


def build_pipeline(config: AIConfig | None = None, store=None) -> Pipeline:
    """
    Wire providers, store and orchestrator into a Pipeline.

    store defaults to a SqliteStore at config.db_path; it serves as both the
    context store and the conversation memory.
    """
    config = config or AIConfig.from_env()

    if store is None:
        from concierge.adapters.sqlite_store import SqliteStore

        if config.db_path != ":memory:" and os.path.dirname(config.db_path):
            os.makedirs(os.path.dirname(config.db_path), exist_ok=True)
        store = SqliteStore(db_path=config.db_path)

    orchestrator = Orchestrator(
        OrchestratorConfig(
            context_store=store,
            memory=store,
            primary=create_provider(config.primary_provider, config),
            fallback=(
                create_provider(config.fallback_provider, config)
                if config.fallback_provider
                else None
            ),
            policy=config.policy,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            provider_timeout=config.provider_timeout,
            max_context_messages=config.max_context_messages,
        )
    )
    return Pipeline(orchestrator, memory=store)
