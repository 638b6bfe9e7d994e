"""
Runtime tunables for reply generation, read from the environment.

Environment variables (all optional):
    PRIMARY_PROVIDER        - "gemini", "claude" or "simulator" (default: gemini)
    FALLBACK_PROVIDER       - same choices (default: claude)
    CONFIDENCE_THRESHOLD    - below this a reply is escalated (default: 0.7)
    MAX_MESSAGE_LENGTH      - longer guest messages count as complex (default: 500)
    MAX_QUESTION_SEGMENTS   - more "?"-separated segments count as complex (default: 3)
    MAX_CONTEXT_MESSAGES    - conversation turns loaded per reply (default: 20)
    AI_TEMPERATURE          - sampling temperature (default: 0.7)
    AI_MAX_TOKENS           - completion budget (default: 1024)
    PROVIDER_TIMEOUT        - seconds before a provider call is abandoned (default: 20)
    DB_PATH                 - SQLite database path (default: data/concierge.db)
    GEMINI_API_KEY, GEMINI_MODEL
    ANTHROPIC_API_KEY, CLAUDE_MODEL
"""

import os
from dataclasses import dataclass

from concierge.domain.escalation import EscalationPolicy


@dataclass
class AIConfig:
    primary_provider: str = "gemini"
    fallback_provider: str = "claude"
    confidence_threshold: float = 0.7
    max_message_length: int = 500
    max_question_segments: int = 3
    max_context_messages: int = 20
    temperature: float = 0.7
    max_tokens: int = 1024
    provider_timeout: float = 20.0
    db_path: str = "data/concierge.db"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-1.5-flash"
    anthropic_api_key: str | None = None
    claude_model: str = "claude-haiku-4-5-20251001"

    @classmethod
    def from_env(cls) -> "AIConfig":
        env = os.environ
        return cls(
            primary_provider=env.get("PRIMARY_PROVIDER", "gemini"),
            fallback_provider=env.get("FALLBACK_PROVIDER", "claude"),
            confidence_threshold=float(env.get("CONFIDENCE_THRESHOLD", "0.7")),
            max_message_length=int(env.get("MAX_MESSAGE_LENGTH", "500")),
            max_question_segments=int(env.get("MAX_QUESTION_SEGMENTS", "3")),
            max_context_messages=int(env.get("MAX_CONTEXT_MESSAGES", "20")),
            temperature=float(env.get("AI_TEMPERATURE", "0.7")),
            max_tokens=int(env.get("AI_MAX_TOKENS", "1024")),
            provider_timeout=float(env.get("PROVIDER_TIMEOUT", "20")),
            db_path=env.get("DB_PATH", "data/concierge.db"),
            gemini_api_key=env.get("GEMINI_API_KEY"),
            gemini_model=env.get("GEMINI_MODEL", "gemini-1.5-flash"),
            anthropic_api_key=env.get("ANTHROPIC_API_KEY"),
            claude_model=env.get("CLAUDE_MODEL", "claude-haiku-4-5-20251001"),
        )

    @property
    def policy(self) -> EscalationPolicy:
        return EscalationPolicy(
            confidence_threshold=self.confidence_threshold,
            max_message_length=self.max_message_length,
            max_question_segments=self.max_question_segments,
        )
