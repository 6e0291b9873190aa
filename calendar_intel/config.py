"""Centralized configuration for Calendar Intel.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/calendar-intel/<VARIABLE_NAME>``.

LLM provider settings are not module constants: ``load_ai_config()`` builds an
immutable snapshot from the environment each time it is called, so the router
can be rebuilt (and tested) against a different environment.
"""

from __future__ import annotations

import logging
import os
import re

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))

_ENV_REF_RE = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 - lazy import, only needed on AWS

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/calendar-intel/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /calendar-intel/{name} (AWS)."
    )


def expand_env_var(value: str) -> str:
    """Resolve a ``${VAR}`` reference to the value of ``VAR``.

    Plain values are returned unchanged; an unset reference resolves to "".
    """
    match = _ENV_REF_RE.match(value.strip()) if value else None
    if match:
        return os.getenv(match.group(1), "")
    return value


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ── Calendar / email platform ───────────────────────────────────────
NYLAS_API_KEY: str = _require_env("NYLAS_API_KEY")
NYLAS_API_URI: str = os.getenv("NYLAS_API_URI", "https://api.us.nylas.com")
NYLAS_GRANT_ID: str = os.getenv("NYLAS_GRANT_ID", "")

# ── Working hours used by the history analysis ──────────────────────
WORKING_HOURS_START: int = int(os.getenv("WORKING_HOURS_START", "9"))
WORKING_HOURS_END: int = int(os.getenv("WORKING_HOURS_END", "17"))

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")


# ── LLM provider configuration snapshot ─────────────────────────────

DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.1"
DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-5"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_GROQ_MODEL = "llama-3.3-70b-versatile"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 120.0


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True)


class OllamaConfig(_Section):
    host: str = DEFAULT_OLLAMA_HOST
    model: str = DEFAULT_OLLAMA_MODEL


class ClaudeConfig(_Section):
    api_key: str = ""
    model: str = DEFAULT_CLAUDE_MODEL


class OpenAIConfig(_Section):
    api_key: str = ""
    model: str = DEFAULT_OPENAI_MODEL
    base_url: str = ""


class GroqConfig(_Section):
    api_key: str = ""
    model: str = DEFAULT_GROQ_MODEL


class FallbackConfig(_Section):
    enabled: bool = False
    providers: list[str] = Field(default_factory=list)


class AIConfig(_Section):
    """Which providers exist, which one is the default, and the fallback order.

    A ``None`` section means that provider is not configured and will not be
    registered with the router.
    """

    default_provider: str = ""
    fallback: FallbackConfig | None = None
    ollama: OllamaConfig | None = None
    claude: ClaudeConfig | None = None
    openai: OpenAIConfig | None = None
    groq: GroqConfig | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_ai_config() -> AIConfig:
    """Build an :class:`AIConfig` from the current environment."""
    env = os.environ

    fallback = None
    if "AI_FALLBACK_ENABLED" in env or "AI_FALLBACK_PROVIDERS" in env:
        fallback = FallbackConfig(
            enabled=_env_flag("AI_FALLBACK_ENABLED", default=True),
            providers=_split_csv(env.get("AI_FALLBACK_PROVIDERS", "")),
        )

    ollama = None
    if env.get("OLLAMA_HOST") or env.get("OLLAMA_MODEL"):
        ollama = OllamaConfig(
            host=env.get("OLLAMA_HOST") or DEFAULT_OLLAMA_HOST,
            model=env.get("OLLAMA_MODEL") or DEFAULT_OLLAMA_MODEL,
        )

    claude = None
    claude_key = env.get("CLAUDE_API_KEY") or env.get("ANTHROPIC_API_KEY", "")
    if claude_key or env.get("CLAUDE_MODEL"):
        claude = ClaudeConfig(
            api_key=expand_env_var(claude_key),
            model=env.get("CLAUDE_MODEL") or DEFAULT_CLAUDE_MODEL,
        )

    openai = None
    if env.get("OPENAI_API_KEY") or env.get("OPENAI_MODEL"):
        openai = OpenAIConfig(
            api_key=expand_env_var(env.get("OPENAI_API_KEY", "")),
            model=env.get("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
            base_url=env.get("OPENAI_BASE_URL", ""),
        )

    groq = None
    if env.get("GROQ_API_KEY") or env.get("GROQ_MODEL"):
        groq = GroqConfig(
            api_key=expand_env_var(env.get("GROQ_API_KEY", "")),
            model=env.get("GROQ_MODEL") or DEFAULT_GROQ_MODEL,
        )

    return AIConfig(
        default_provider=env.get("AI_DEFAULT_PROVIDER", "").strip(),
        fallback=fallback,
        ollama=ollama,
        claude=claude,
        openai=openai,
        groq=groq,
        request_timeout=float(
            env.get("AI_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS)
        ),
    )
