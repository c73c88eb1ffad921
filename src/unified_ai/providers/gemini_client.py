"""
GeminiProviderClient — Google Gemini adapter via the google-genai SDK.

Uses the SDK's async surface (client.aio). Structured output uses Gemini's
native JSON mode with a response schema; thinking budgets follow the
caller's reasoning effort on 2.5-series models. Traffic goes through
Cloudflare AI Gateway when it is configured.

Public API:
    GeminiProviderClient(settings=None, client=None)
    to_gemini_contents(messages) → list[types.Content]
"""

import json
import logging
from typing import Any, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from unified_ai.config import AISettings, get_ai_gateway_url
from unified_ai.errors import EmptyResponseError, MissingCredentialError, UnsupportedInputError
from unified_ai.providers.base import ProviderClient
from unified_ai.providers.schema_normalizer import validate_structured
from unified_ai.providers.tool_schema import (
    RawToolCall,
    from_gemini_function_calls,
    to_gemini_declarations,
    to_gemini_function_call,
    to_gemini_schema,
)
from unified_ai.types import ChatMessage, GenerationRequest, SchemaLike, ToolDeclaration, VisionInput
from unified_ai.utils.sanitizer import parse_json_output

logger = logging.getLogger(__name__)

GATEWAY_PROVIDER = "google-ai-studio"
API_VERSION = "v1beta"

THINKING_BUDGETS = {"low": 1024, "medium": 8192, "high": 24576}


def to_gemini_contents(messages: list[ChatMessage]) -> list:
    """Convert canonical messages to Gemini Content objects.

    System turns become user text prefixed with "System Context:" and tool
    results become function responses. A tool result without a name takes
    the name of the earlier call it answers.
    """
    contents = []
    call_names: dict[str, str] = {}
    for msg in messages:
        if msg.role == "assistant":
            call_names.update({call.id: call.name for call in msg.tool_calls})
            parts = []
            if msg.content:
                parts.append(types.Part(text=msg.content))
            for call in msg.tool_calls:
                parts.append(types.Part(function_call=types.FunctionCall(**to_gemini_function_call(call))))
            contents.append(types.Content(role="model", parts=parts or [types.Part(text="")]))
        elif msg.role == "system":
            contents.append(types.Content(
                role="user", parts=[types.Part(text=f"System Context: {msg.content or ''}")],
            ))
        elif msg.role == "tool":
            contents.append(types.Content(
                role="user",
                parts=[types.Part.from_function_response(
                    name=msg.name or call_names.get(msg.tool_call_id or "", ""),
                    response=_function_response(msg.content),
                )],
            ))
        else:
            contents.append(types.Content(role="user", parts=[types.Part(text=msg.content or "")]))
    return contents


def _function_response(content: Optional[str]) -> dict:
    try:
        result = json.loads(content) if content else {}
    except (json.JSONDecodeError, TypeError):
        return {"result": str(content)}
    if not isinstance(result, dict):
        return {"result": result}
    return result


class GeminiProviderClient(ProviderClient):
    """Gemini provider adapter using the google-genai SDK."""

    # google-genai raises httpx errors for network failures unwrapped.
    transport_errors = (genai_errors.APIError, httpx.HTTPError)
    sentinel_description = "Provide final structured response."

    def __init__(self, settings: Optional[AISettings] = None, client: Any = None):
        super().__init__(settings)
        if not self._settings.gemini_api_key:
            raise MissingCredentialError("Missing GEMINI_API_KEY")

        if client is None:
            http_options = types.HttpOptions(
                api_version=API_VERSION,
                timeout=int(self._settings.request_timeout * 1000),
            )
            if self._settings.gateway_enabled:
                http_options.base_url = get_ai_gateway_url(self._settings, GATEWAY_PROVIDER)
                http_options.headers = self._settings.gateway_headers() or None
            client = genai.Client(api_key=self._settings.gemini_api_key, http_options=http_options)
        self._client = client
        logger.info("Gemini provider initialized (gateway=%s)", self._settings.gateway_enabled)

    @property
    def provider_name(self) -> str:
        return "gemini"

    # ------------------------------------------------------------------
    # Text & structured
    # ------------------------------------------------------------------

    async def generate_text(self, request: GenerationRequest) -> str:
        model = self._model(request.model)
        config = types.GenerateContentConfig(system_instruction=request.system or None)
        self._apply_thinking(config, model, request.reasoning_effort)

        response = await self._call(
            "text generation",
            self._client.aio.models.generate_content(
                model=model,
                contents=to_gemini_contents(request.conversation()),
                config=config,
            ),
        )
        return response.text or ""

    async def generate_structured(self, request: GenerationRequest, schema: SchemaLike) -> Any:
        model = self._model(request.model)
        config = types.GenerateContentConfig(
            system_instruction=request.system or None,
            response_mime_type="application/json",
            response_schema=to_gemini_schema(schema),
        )
        self._apply_thinking(config, model, request.reasoning_effort)

        response = await self._call(
            "structured generation",
            self._client.aio.models.generate_content(
                model=model,
                contents=to_gemini_contents(request.conversation()),
                config=config,
            ),
        )
        if not response.text:
            raise EmptyResponseError("Empty response from Gemini")
        return validate_structured(parse_json_output(response.text), schema)

    # ------------------------------------------------------------------
    # Embeddings & vision
    # ------------------------------------------------------------------

    async def generate_embeddings(self, request: GenerationRequest) -> list[float]:
        config = None
        if request.output_dimensionality:
            config = types.EmbedContentConfig(output_dimensionality=request.output_dimensionality)

        response = await self._call(
            "embedding",
            self._client.aio.models.embed_content(
                model=request.model or self._settings.gemini_embedding_model,
                contents=request.prompt,
                config=config,
            ),
        )
        if not response.embeddings or response.embeddings[0].values is None:
            raise EmptyResponseError("No embeddings returned")
        return list(response.embeddings[0].values)

    async def generate_vision(self, request: GenerationRequest, image: VisionInput) -> str:
        if image.kind != "inline":
            raise UnsupportedInputError("Gemini vision requires inline base64 image input, not a URL.")

        parts = [
            types.Part(text=request.prompt),
            types.Part.from_bytes(data=image.as_bytes(), mime_type=image.effective_mime_type),
        ]
        response = await self._call(
            "vision generation",
            self._client.aio.models.generate_content(
                model=self._model(request.model),
                contents=[types.Content(role="user", parts=parts)],
                config=types.GenerateContentConfig(system_instruction=request.system or None),
            ),
        )
        return response.text or ""

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def _tool_turn(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDeclaration],
        model: Optional[str] = None,
    ) -> tuple[Optional[str], list[RawToolCall]]:
        logger.debug("Gemini tool turn: %d message(s), %d tool(s)", len(messages), len(tools))
        config = types.GenerateContentConfig(
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )
        if tools:
            config.tools = [types.Tool(function_declarations=to_gemini_declarations(tools))]
            config.tool_config = types.ToolConfig(
                function_calling_config=types.FunctionCallingConfig(mode="AUTO"),
            )

        response = await self._call(
            "tool generation",
            self._client.aio.models.generate_content(
                model=self._model(model),
                contents=to_gemini_contents(messages),
                config=config,
            ),
        )

        text_parts = []
        function_calls = []
        if response.candidates and response.candidates[0].content:
            for part in response.candidates[0].content.parts or []:
                if part.text:
                    text_parts.append(part.text)
                if part.function_call:
                    function_calls.append(part.function_call)

        content = "".join(text_parts) or None
        return content, from_gemini_function_calls(function_calls)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _model(self, override: Optional[str]) -> str:
        return override or self._settings.gemini_model

    @staticmethod
    def _apply_thinking(config, model: str, effort: Optional[str]) -> None:
        if effort and "2.5" in model:
            config.thinking_config = types.ThinkingConfig(thinking_budget=THINKING_BUDGETS[effort])
