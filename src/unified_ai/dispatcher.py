"""
AIDispatcher — the single entry point for all AI capabilities.

Selects a provider adapter by identifier and forwards the call. Unknown
selectors fall back to the configured default provider rather than failing.
Adapters are created lazily on first use and reused afterwards.

Public API:
    AIDispatcher(settings=None, providers=None)
    .resolve_provider(selector)       → str
    .get_provider(selector)           → ProviderClient
    .generate_text(request)           → str
    .generate_structured(request, schema)
    .generate_embeddings(request)     → list[float]
    .generate_vision(request, image)  → str
    .generate_vision_structured(request, image, schema)
    .generate_with_tools(messages, tools, provider=None, model=None)  → ToolTurn
    .generate_structured_with_tools(messages, tools, schema, provider=None, model=None)
                                      → StructuredToolResult

Module-level functions with the same names forward to a shared default
dispatcher built from the environment.
"""

import logging
from dataclasses import replace
from typing import Any, Optional, Sequence, Union

from unified_ai.config import DEFAULT_PROVIDER, PROVIDERS, AISettings
from unified_ai.providers.base import MessageLike, ProviderClient, ToolLike
from unified_ai.providers.factory import create_provider
from unified_ai.types import (
    GenerationRequest,
    SchemaLike,
    StructuredToolResult,
    ToolTurn,
    VisionInput,
)

logger = logging.getLogger(__name__)

RequestLike = Union[GenerationRequest, str]


def _as_request(request: RequestLike, **overrides) -> GenerationRequest:
    if isinstance(request, GenerationRequest):
        return replace(request, **overrides) if overrides else request
    return GenerationRequest(prompt=request, **overrides)


class AIDispatcher:
    """Routes capability calls to provider adapters."""

    def __init__(
        self,
        settings: Optional[AISettings] = None,
        providers: Optional[dict[str, ProviderClient]] = None,
    ):
        self._settings = settings or AISettings.from_env()
        self._providers: dict[str, ProviderClient] = dict(providers or {})

        default = self._settings.default_provider
        if default not in PROVIDERS:
            logger.warning("Unknown default provider '%s'; using %s", default, DEFAULT_PROVIDER)
            default = DEFAULT_PROVIDER
        self._default = default

    @property
    def default_provider(self) -> str:
        return self._default

    def resolve_provider(self, selector: Optional[str] = None) -> str:
        """Map a selector to a known provider id, falling back to the default."""
        if not selector:
            return self._default
        name = selector.strip().lower()
        if name == "worker-ai":
            name = "workers-ai"
        if name not in PROVIDERS:
            logger.warning("Unknown provider '%s'; falling back to %s", selector, self._default)
            return self._default
        return name

    def get_provider(self, selector: Optional[str] = None) -> ProviderClient:
        name = self.resolve_provider(selector)
        provider = self._providers.get(name)
        if provider is None:
            provider = create_provider(name, self._settings)
            self._providers[name] = provider
        return provider

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def generate_text(self, request: RequestLike, **kwargs) -> str:
        request = _as_request(request, **kwargs)
        return await self.get_provider(request.provider).generate_text(request)

    async def generate_structured(self, request: RequestLike, schema: SchemaLike, **kwargs) -> Any:
        request = _as_request(request, **kwargs)
        return await self.get_provider(request.provider).generate_structured(request, schema)

    async def generate_embeddings(self, request: RequestLike, **kwargs) -> list[float]:
        request = _as_request(request, **kwargs)
        return await self.get_provider(request.provider).generate_embeddings(request)

    async def generate_vision(self, request: RequestLike, image: VisionInput, **kwargs) -> str:
        request = _as_request(request, **kwargs)
        return await self.get_provider(request.provider).generate_vision(request, image)

    async def generate_vision_structured(
        self,
        request: RequestLike,
        image: VisionInput,
        schema: SchemaLike,
        **kwargs,
    ) -> Any:
        request = _as_request(request, **kwargs)
        return await self.get_provider(request.provider).generate_vision_structured(request, image, schema)

    async def generate_with_tools(
        self,
        messages: Sequence[MessageLike],
        tools: Sequence[ToolLike],
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> ToolTurn:
        return await self.get_provider(provider).generate_with_tools(messages, tools, model)

    async def generate_structured_with_tools(
        self,
        messages: Sequence[MessageLike],
        tools: Sequence[ToolLike],
        schema: SchemaLike,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> StructuredToolResult:
        return await self.get_provider(provider).generate_structured_with_tools(
            messages, tools, schema, model,
        )


# ---------------------------------------------------------------------------
# Module-level default
# ---------------------------------------------------------------------------

_default_dispatcher: Optional[AIDispatcher] = None


def get_dispatcher() -> AIDispatcher:
    """Shared dispatcher configured from the environment on first use."""
    global _default_dispatcher
    if _default_dispatcher is None:
        _default_dispatcher = AIDispatcher()
    return _default_dispatcher


def set_dispatcher(dispatcher: Optional[AIDispatcher]) -> None:
    """Replace the shared dispatcher (None resets it)."""
    global _default_dispatcher
    _default_dispatcher = dispatcher


async def generate_text(request: RequestLike, **kwargs) -> str:
    return await get_dispatcher().generate_text(request, **kwargs)


async def generate_structured(request: RequestLike, schema: SchemaLike, **kwargs) -> Any:
    return await get_dispatcher().generate_structured(request, schema, **kwargs)


async def generate_embeddings(request: RequestLike, **kwargs) -> list[float]:
    return await get_dispatcher().generate_embeddings(request, **kwargs)


async def generate_vision(request: RequestLike, image: VisionInput, **kwargs) -> str:
    return await get_dispatcher().generate_vision(request, image, **kwargs)


async def generate_vision_structured(
    request: RequestLike, image: VisionInput, schema: SchemaLike, **kwargs,
) -> Any:
    return await get_dispatcher().generate_vision_structured(request, image, schema, **kwargs)


async def generate_with_tools(messages, tools, provider=None, model=None) -> ToolTurn:
    return await get_dispatcher().generate_with_tools(messages, tools, provider, model)


async def generate_structured_with_tools(
    messages, tools, schema, provider=None, model=None,
) -> StructuredToolResult:
    return await get_dispatcher().generate_structured_with_tools(messages, tools, schema, provider, model)
