"""
WorkersAIProviderClient — Cloudflare Workers AI adapter over the REST API.

Every capability is a POST to /accounts/{account}/ai/run/{model} using
httpx. Structured output goes through the two-phase protocol, since Llama
models are unreliable at schema-constrained decoding of complex schemas.

Public API:
    WorkersAIModels
    WorkersAIProviderClient(settings=None, transport=None)
"""

import json
import logging
from typing import Any, Optional

import httpx

from unified_ai.advisor import model_has_capability
from unified_ai.config import AISettings
from unified_ai.errors import (
    EmptyResponseError,
    MissingCredentialError,
    ProviderTransportError,
    StructuredOutputError,
    UnsupportedInputError,
)
from unified_ai.providers.base import ProviderClient
from unified_ai.providers.schema_normalizer import normalize_schema, validate_structured
from unified_ai.providers.tool_schema import (
    RawToolCall,
    extract_text_tool_calls,
    from_workers_ai_tool_calls,
    to_openai_messages,
    to_workers_ai_tools,
)
from unified_ai.providers.two_phase import run_two_phase
from unified_ai.types import ChatMessage, GenerationRequest, SchemaLike, ToolDeclaration, VisionInput

logger = logging.getLogger(__name__)

API_BASE = "https://api.cloudflare.com/client/v4"


class WorkersAIModels:
    TEXT_REASONING = "@cf/meta/llama-3.3-70b-instruct-fp8-fast"
    TEXT_FAST = "@cf/meta/llama-3-8b-instruct"
    STRUCTURED = "@cf/meta/llama-3.3-70b-instruct-fp8-fast"
    VISION = "@cf/meta/llama-3.2-11b-vision-instruct"
    EMBEDDING = "@cf/baai/bge-large-en-v1.5"


def to_workers_ai_messages(messages: list[ChatMessage], system: Optional[str] = None) -> list[dict]:
    """OpenAI-shaped messages with null content replaced by an empty string."""
    rendered = to_openai_messages(messages, system)
    for msg in rendered:
        if msg.get("content") is None:
            msg["content"] = ""
    return rendered


class WorkersAIProviderClient(ProviderClient):
    """Workers AI provider adapter using the Cloudflare REST API."""

    transport_errors = (httpx.HTTPError, json.JSONDecodeError)

    def __init__(
        self,
        settings: Optional[AISettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(settings)
        if not self._settings.cloudflare_account_id or not self._settings.cloudflare_api_token:
            raise MissingCredentialError("Missing CLOUDFLARE_ACCOUNT_ID or CLOUDFLARE_API_TOKEN")
        self._transport = transport
        logger.info("Workers AI provider initialized (account=%s)", self._settings.cloudflare_account_id)

    @property
    def provider_name(self) -> str:
        return "workers-ai"

    # ------------------------------------------------------------------
    # Text & structured
    # ------------------------------------------------------------------

    async def generate_text(self, request: GenerationRequest) -> str:
        model = request.model or WorkersAIModels.TEXT_REASONING
        payload: dict[str, Any] = {
            "messages": to_workers_ai_messages(request.conversation(), request.system),
        }
        if request.reasoning_effort and model_has_capability(model, "reasoning"):
            payload["reasoning"] = {"effort": request.reasoning_effort}

        result = await self._run(model, payload, "text generation")
        return self._response_text(result)

    async def generate_structured(self, request: GenerationRequest, schema: SchemaLike) -> Any:
        json_schema = normalize_schema(schema, "workers-ai")

        async def structure(phase_two: GenerationRequest) -> Any:
            payload = {
                "messages": to_workers_ai_messages(phase_two.conversation(), phase_two.system),
                "response_format": {
                    "type": "json_schema",
                    "json_schema": {"name": "structured_output", "schema": json_schema, "strict": True},
                },
            }
            result = await self._run(WorkersAIModels.STRUCTURED, payload, "structured generation")
            if isinstance(result, dict) and "response" in result:
                return result["response"]
            raise StructuredOutputError("Unexpected response format from structuring model", raw=result)

        value = await run_two_phase(self.generate_text, structure, request)
        return validate_structured(value, schema)

    # ------------------------------------------------------------------
    # Embeddings & vision
    # ------------------------------------------------------------------

    async def generate_embeddings(self, request: GenerationRequest) -> list[float]:
        model = request.model or WorkersAIModels.EMBEDDING
        result = await self._run(model, {"text": [request.prompt]}, "embedding")
        data = result.get("data") if isinstance(result, dict) else None
        if not data:
            raise EmptyResponseError(f"Workers AI returned no embedding data for {model}")
        return list(data[0])

    async def generate_vision(self, request: GenerationRequest, image: VisionInput) -> str:
        if image.kind != "inline":
            raise UnsupportedInputError("Workers AI currently requires Base64 image input.")

        payload = {"prompt": request.prompt, "image": list(image.as_bytes())}
        result = await self._run(request.model or WorkersAIModels.VISION, payload, "vision generation")
        if isinstance(result, dict) and result.get("response"):
            return self._response_text(result)
        return json.dumps(result)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def _tool_turn(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDeclaration],
        model: Optional[str] = None,
    ) -> tuple[Optional[str], list[RawToolCall]]:
        logger.debug("Workers AI tool turn: %d message(s), %d tool(s)", len(messages), len(tools))
        payload: dict[str, Any] = {"messages": to_workers_ai_messages(messages)}
        if tools:
            payload["tools"] = to_workers_ai_tools(tools)

        result = await self._run(model or WorkersAIModels.TEXT_FAST, payload, "tool generation")
        if not isinstance(result, dict):
            return (str(result) if result is not None else None), []

        content = result.get("response")
        if content is not None and not isinstance(content, str):
            content = json.dumps(content)
        calls = from_workers_ai_tool_calls(result.get("tool_calls"))
        if not calls and content:
            calls = extract_text_tool_calls(content, [tool.name for tool in tools])
            if calls:
                logger.debug("Recovered %d tool call(s) from response text", len(calls))
                content = None
        return content or None, calls

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _run_url(self, model: str) -> str:
        return f"{API_BASE}/accounts/{self._settings.cloudflare_account_id}/ai/run/{model}"

    async def _post(self, model: str, payload: dict) -> Any:
        headers = {"Authorization": f"Bearer {self._settings.cloudflare_api_token}"}
        async with httpx.AsyncClient(
            timeout=self._settings.request_timeout, transport=self._transport,
        ) as client:
            response = await client.post(self._run_url(model), json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

    async def _run(self, model: str, payload: dict, operation: str) -> Any:
        """Run a model and return the unwrapped "result" object."""
        logger.debug("Workers AI %s: model=%s", operation, model)
        data = await self._call(operation, self._post(model, payload))
        if isinstance(data, dict) and "result" in data:
            if data.get("success") is False:
                raise ProviderTransportError(
                    self.provider_name, f"{operation} failed: {json.dumps(data.get('errors'))}",
                )
            return data["result"]
        return data

    @staticmethod
    def _response_text(result: Any) -> str:
        if isinstance(result, dict) and "response" in result:
            raw = result["response"]
            if raw is None:
                return ""
            return raw if isinstance(raw, str) else json.dumps(raw)
        if result is None:
            return ""
        if isinstance(result, str):
            return result
        return json.dumps(result)
