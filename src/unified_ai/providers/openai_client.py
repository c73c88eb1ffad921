"""
OpenAIProviderClient — OpenAI adapter via the openai SDK (AsyncOpenAI).

Chat Completions for text, structured output (json_schema response format),
vision and tool calls; Embeddings for vectors. Traffic goes through
Cloudflare AI Gateway when it is configured.

Public API:
    OpenAIProviderClient(settings=None, client=None)
"""

import logging
from typing import Any, Optional

import openai

from unified_ai.config import AISettings, get_ai_gateway_url
from unified_ai.errors import EmptyResponseError, MissingCredentialError
from unified_ai.providers.base import ProviderClient
from unified_ai.providers.schema_normalizer import (
    is_strict_compatible,
    normalize_schema,
    validate_structured,
)
from unified_ai.providers.tool_schema import (
    RawToolCall,
    from_openai_tool_calls,
    to_openai_messages,
    to_openai_tools,
)
from unified_ai.types import ChatMessage, GenerationRequest, SchemaLike, ToolDeclaration, VisionInput
from unified_ai.utils.sanitizer import parse_json_output

logger = logging.getLogger(__name__)

# Model families that accept the reasoning_effort parameter.
REASONING_MODEL_PREFIXES = ("o1", "o3", "o4", "gpt-5")


class OpenAIProviderClient(ProviderClient):
    """OpenAI provider adapter using the openai SDK."""

    transport_errors = (openai.APIError,)

    def __init__(self, settings: Optional[AISettings] = None, client: Any = None):
        super().__init__(settings)
        if not self._settings.openai_api_key:
            raise MissingCredentialError("Missing OPENAI_API_KEY")

        if client is None:
            kwargs: dict[str, Any] = {
                "api_key": self._settings.openai_api_key,
                "timeout": self._settings.request_timeout,
            }
            if self._settings.gateway_enabled:
                kwargs["base_url"] = get_ai_gateway_url(self._settings, "openai")
                kwargs["default_headers"] = self._settings.gateway_headers()
            client = openai.AsyncOpenAI(**kwargs)
        self._client = client
        logger.info("OpenAI provider initialized (gateway=%s)", self._settings.gateway_enabled)

    @property
    def provider_name(self) -> str:
        return "openai"

    # ------------------------------------------------------------------
    # Text & structured
    # ------------------------------------------------------------------

    async def generate_text(self, request: GenerationRequest) -> str:
        model = self._model(request.model)
        response = await self._call(
            "text generation",
            self._client.chat.completions.create(
                model=model,
                messages=to_openai_messages(request.conversation(), request.system),
                **self._effort_kwargs(model, request.reasoning_effort),
            ),
        )
        return self._message(response).content or ""

    async def generate_structured(self, request: GenerationRequest, schema: SchemaLike) -> Any:
        model = self._model(request.model)
        json_schema = normalize_schema(schema, "openai")
        strict = is_strict_compatible(json_schema)
        logger.debug("OpenAI structured request: model=%s strict=%s", model, strict)

        response = await self._call(
            "structured generation",
            self._client.chat.completions.create(
                model=model,
                messages=to_openai_messages(request.conversation(), request.system),
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": "response", "schema": json_schema, "strict": strict},
                },
                **self._effort_kwargs(model, request.reasoning_effort),
            ),
        )
        content = self._message(response).content
        return validate_structured(parse_json_output(content or "{}"), schema)

    # ------------------------------------------------------------------
    # Embeddings & vision
    # ------------------------------------------------------------------

    async def generate_embeddings(self, request: GenerationRequest) -> list[float]:
        model = request.model or self._settings.openai_embedding_model
        kwargs: dict[str, Any] = {"model": model, "input": request.prompt, "encoding_format": "float"}
        if request.output_dimensionality:
            kwargs["dimensions"] = request.output_dimensionality

        response = await self._call("embedding", self._client.embeddings.create(**kwargs))
        if not response.data:
            raise EmptyResponseError("OpenAI API returned no embedding data.")
        return list(response.data[0].embedding)

    async def generate_vision(self, request: GenerationRequest, image: VisionInput) -> str:
        # Remote URLs are passed through; inline data becomes a data: URL.
        content = [
            {"type": "text", "text": request.prompt},
            {"type": "image_url", "image_url": {"url": image.data_url()}},
        ]
        messages = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.append({"role": "user", "content": content})

        response = await self._call(
            "vision generation",
            self._client.chat.completions.create(model=self._model(request.model), messages=messages),
        )
        return self._message(response).content or ""

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def _tool_turn(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDeclaration],
        model: Optional[str] = None,
    ) -> tuple[Optional[str], list[RawToolCall]]:
        logger.debug("OpenAI tool turn: %d message(s), %d tool(s)", len(messages), len(tools))
        kwargs: dict[str, Any] = {}
        if tools:
            kwargs["tools"] = to_openai_tools(tools)
            kwargs["tool_choice"] = "auto"

        response = await self._call(
            "tool generation",
            self._client.chat.completions.create(
                model=self._model(model),
                messages=to_openai_messages(messages),
                **kwargs,
            ),
        )
        message = self._message(response)
        return message.content, from_openai_tool_calls(message.tool_calls)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _model(self, override: Optional[str]) -> str:
        return override or self._settings.openai_model

    @staticmethod
    def _effort_kwargs(model: str, effort: Optional[str]) -> dict:
        if effort and model.startswith(REASONING_MODEL_PREFIXES):
            return {"reasoning_effort": effort}
        return {}

    @staticmethod
    def _message(response):
        if not response.choices:
            raise EmptyResponseError("OpenAI API returned no choices.")
        return response.choices[0].message
