import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_BASE_URL = "https://api.anthropic.com"


class ConfigError(Exception):
    """Raised when an environment variable holds an unusable value."""


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    max_tokens: int = 2000
    temperature: float = 0.2
    provider_timeout: float = 60.0  # seconds, per attempt
    provider_base_url: str = DEFAULT_BASE_URL

    max_attempts: int = 3
    backoff_base: float = 1.0  # seconds
    backoff_multiplier: float = 2.0
    circuit_cooldown: float = 30.0  # seconds
    analysis_deadline: Optional[float] = None  # seconds for the whole provider phase

    database_url: str = ""

    @property
    def provider_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            api_key=os.getenv("CLAUDE_API_KEY", "").strip(),
            model=os.getenv("CLAUDE_MODEL", DEFAULT_MODEL),
            max_tokens=_env_int("CLAUDE_MAX_TOKENS", 2000),
            temperature=_env_float("CLAUDE_TEMPERATURE", 0.2),
            provider_timeout=_env_float("PROVIDER_TIMEOUT", 60.0),
            provider_base_url=os.getenv("PROVIDER_BASE_URL", DEFAULT_BASE_URL),
            max_attempts=_env_int("MAX_ATTEMPTS", 3),
            backoff_base=_env_float("BACKOFF_BASE", 1.0),
            backoff_multiplier=_env_float("BACKOFF_MULTIPLIER", 2.0),
            circuit_cooldown=_env_float("CIRCUIT_COOLDOWN", 30.0),
            analysis_deadline=_env_float("ANALYSIS_DEADLINE", None),
            database_url=os.getenv("DATABASE_URL", ""),
        )
        if settings.max_attempts < 1:
            raise ConfigError("MAX_ATTEMPTS must be at least 1")
        return settings
