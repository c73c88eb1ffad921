"""Backend adapters and the schema/tool translation layer they share."""

from unified_ai.providers.base import ProviderClient
from unified_ai.providers.factory import create_provider

__all__ = ["ProviderClient", "create_provider"]
