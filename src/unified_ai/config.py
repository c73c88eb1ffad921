"""
Runtime settings for the unified AI layer.

Settings are read from environment variables once per AISettings instance.
API keys are never logged.

Environment variables:
    AI_DEFAULT_PROVIDER          — default: workers-ai
    OPENAI_API_KEY, OPENAI_MODEL, OPENAI_EMBEDDING_MODEL
    GEMINI_API_KEY, GEMINI_MODEL, GEMINI_EMBEDDING_MODEL
    CLOUDFLARE_ACCOUNT_ID, CLOUDFLARE_API_TOKEN
    AI_GATEWAY_NAME, CLOUDFLARE_AI_GATEWAY_TOKEN
    AI_REQUEST_TIMEOUT           — seconds, default: 60

Public API:
    AISettings.from_env(environ=None)
    get_ai_gateway_url(settings, provider, model_name=None, api_version=None)
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from unified_ai.errors import ConfigError, MissingCredentialError

logger = logging.getLogger(__name__)

PROVIDERS = ("workers-ai", "gemini", "openai")
DEFAULT_PROVIDER = "workers-ai"

_GATEWAY_BASE = "https://gateway.ai.cloudflare.com/v1"


@dataclass(frozen=True)
class AISettings:
    """Credentials, default models and gateway routing for all backends."""
    default_provider: str = DEFAULT_PROVIDER
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_embedding_model: str = "text-embedding-3-small"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    gemini_embedding_model: str = "text-embedding-004"
    cloudflare_account_id: Optional[str] = None
    cloudflare_api_token: Optional[str] = None
    ai_gateway_name: Optional[str] = None
    ai_gateway_token: Optional[str] = None
    request_timeout: float = 60.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AISettings":
        env = os.environ if environ is None else environ

        def _get(key: str, default: Optional[str] = None) -> Optional[str]:
            value = (env.get(key) or "").strip()
            return value or default

        raw_timeout = _get("AI_REQUEST_TIMEOUT", "60")
        try:
            timeout = float(raw_timeout)
        except ValueError as exc:
            raise ConfigError(f"AI_REQUEST_TIMEOUT must be a number, got '{raw_timeout}'") from exc
        if timeout <= 0:
            raise ConfigError(f"AI_REQUEST_TIMEOUT must be positive, got {timeout}")

        return cls(
            default_provider=(_get("AI_DEFAULT_PROVIDER", DEFAULT_PROVIDER) or DEFAULT_PROVIDER).lower(),
            openai_api_key=_get("OPENAI_API_KEY"),
            openai_model=_get("OPENAI_MODEL", cls.openai_model),
            openai_embedding_model=_get("OPENAI_EMBEDDING_MODEL", cls.openai_embedding_model),
            gemini_api_key=_get("GEMINI_API_KEY"),
            gemini_model=_get("GEMINI_MODEL", cls.gemini_model),
            gemini_embedding_model=_get("GEMINI_EMBEDDING_MODEL", cls.gemini_embedding_model),
            cloudflare_account_id=_get("CLOUDFLARE_ACCOUNT_ID"),
            cloudflare_api_token=_get("CLOUDFLARE_API_TOKEN"),
            ai_gateway_name=_get("AI_GATEWAY_NAME"),
            ai_gateway_token=_get("CLOUDFLARE_AI_GATEWAY_TOKEN"),
            request_timeout=timeout,
        )

    @property
    def gateway_enabled(self) -> bool:
        """OpenAI and Gemini traffic goes through AI Gateway when both ids are set."""
        return bool(self.cloudflare_account_id and self.ai_gateway_name)

    def gateway_headers(self) -> dict[str, str]:
        if self.gateway_enabled and self.ai_gateway_token:
            return {"cf-aig-authorization": f"Bearer {self.ai_gateway_token}"}
        return {}


def get_ai_gateway_url(
    settings: AISettings,
    provider: str,
    model_name: Optional[str] = None,
    api_version: Optional[str] = None,
) -> str:
    """Construct a Cloudflare AI Gateway URL.

    Without model_name the base URL for SDK clients is returned. With one,
    the provider's REST generation path is appended:
        openai            → .../openai/chat/completions
        google-ai-studio  → .../google-ai-studio/{version}/models/{model}:generateContent

    Raises:
        MissingCredentialError if no Cloudflare account id is configured.
    """
    if not settings.cloudflare_account_id:
        raise MissingCredentialError("Missing CLOUDFLARE_ACCOUNT_ID for AI Gateway routing")

    gateway = settings.ai_gateway_name or "default"
    base_url = f"{_GATEWAY_BASE}/{settings.cloudflare_account_id}/{gateway}/{provider}"

    if not model_name:
        return base_url

    if provider == "openai":
        return f"{base_url}/chat/completions"
    if provider == "google-ai-studio":
        return f"{base_url}/{api_version or 'v1beta'}/models/{model_name}:generateContent"
    return base_url
