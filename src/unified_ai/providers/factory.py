"""
Provider Factory — creates the appropriate ProviderClient.

Public API:
    CREDENTIAL_VARS
    create_provider(provider_name, settings=None, **kwargs) → ProviderClient
"""

import logging
from typing import Optional

from unified_ai.config import AISettings
from unified_ai.providers.base import ProviderClient

logger = logging.getLogger(__name__)

# Environment variables each provider needs before it can be constructed
CREDENTIAL_VARS = {
    "workers-ai": ("CLOUDFLARE_ACCOUNT_ID", "CLOUDFLARE_API_TOKEN"),
    "gemini": ("GEMINI_API_KEY",),
    "openai": ("OPENAI_API_KEY",),
}


def create_provider(
    provider_name: str,
    settings: Optional[AISettings] = None,
    **kwargs,
) -> ProviderClient:
    """Factory to create the right ProviderClient based on provider name.

    Args:
        provider_name: One of "workers-ai", "gemini", "openai".
        settings: Credentials and defaults. Read from the environment if omitted.
        **kwargs: Provider-specific options (client=..., transport=...).

    Returns:
        An initialized ProviderClient instance.

    Raises:
        ValueError: If the provider name is not recognized.
        MissingCredentialError: If the provider's credentials are not configured.
    """
    settings = settings or AISettings.from_env()

    if provider_name == "workers-ai":
        from unified_ai.providers.workers_ai_client import WorkersAIProviderClient
        return WorkersAIProviderClient(settings=settings, **kwargs)

    elif provider_name == "gemini":
        from unified_ai.providers.gemini_client import GeminiProviderClient
        return GeminiProviderClient(settings=settings, **kwargs)

    elif provider_name == "openai":
        from unified_ai.providers.openai_client import OpenAIProviderClient
        return OpenAIProviderClient(settings=settings, **kwargs)

    raise ValueError(
        f"Unknown provider: '{provider_name}'. "
        f"Available: {', '.join(CREDENTIAL_VARS.keys())}"
    )
