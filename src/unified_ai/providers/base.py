"""
ProviderClient — abstract base class for AI backend adapters.

Defines the capability set every adapter implements. The dispatcher calls
through this interface; backend-specific envelopes never leave a subclass.

Subclasses implement the five backend-facing methods. Tool decoding, the
final_response convention and describe-then-extract vision are shared here.

Public API:
    VISION_DESCRIBE_INSTRUCTION
    vision_describe_prompt(prompt)   → str
    vision_extract_prompt(text)      → str
    ProviderClient                   — abstract base class
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence, Union

from unified_ai.config import AISettings
from unified_ai.errors import ProviderTransportError
from unified_ai.providers.final_response import (
    DEFAULT_DESCRIPTION,
    assemble_result,
    augment_tools,
    check_tool_names,
)
from unified_ai.providers.tool_schema import RawToolCall, decode_tool_calls
from unified_ai.types import (
    ChatMessage,
    GenerationRequest,
    SchemaLike,
    StructuredToolResult,
    ToolDeclaration,
    ToolTurn,
    VisionInput,
)

logger = logging.getLogger(__name__)

VISION_DESCRIBE_INSTRUCTION = (
    "Describe the image in extreme detail, focusing specifically on the data points "
    "required to answer the prompt. Do not output JSON yet, just describe the visual facts."
)

MessageLike = Union[ChatMessage, dict]
ToolLike = Union[ToolDeclaration, dict]


def vision_describe_prompt(prompt: str) -> str:
    return f"{prompt} {VISION_DESCRIBE_INSTRUCTION}".strip()


def vision_extract_prompt(description: str) -> str:
    return f"Extract data from this visual description:\n\n{description}"


def coerce_messages(messages: Sequence[MessageLike]) -> list[ChatMessage]:
    return [m if isinstance(m, ChatMessage) else ChatMessage.from_dict(m) for m in messages]


def coerce_tools(tools: Sequence[ToolLike]) -> list[ToolDeclaration]:
    return [t if isinstance(t, ToolDeclaration) else ToolDeclaration.from_dict(t) for t in tools]


class ProviderClient(ABC):
    """Abstract base for backend adapters.

    Subclasses must implement:
        provider_name, generate_text, generate_structured,
        generate_embeddings, generate_vision, _tool_turn
    """

    # Exceptions from the backend SDK/transport that become ProviderTransportError.
    transport_errors: tuple = ()
    sentinel_description: str = DEFAULT_DESCRIPTION

    def __init__(self, settings: Optional[AISettings] = None):
        self._settings = settings or AISettings.from_env()

    @property
    def settings(self) -> AISettings:
        return self._settings

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier, e.g. 'openai', 'gemini', 'workers-ai'."""
        ...

    # ------------------------------------------------------------------
    # Backend-facing capabilities
    # ------------------------------------------------------------------

    @abstractmethod
    async def generate_text(self, request: GenerationRequest) -> str:
        """Plain text completion. Always a str, never a backend envelope."""
        ...

    @abstractmethod
    async def generate_structured(self, request: GenerationRequest, schema: SchemaLike) -> Any:
        """Schema-constrained completion, parsed and validated.

        Raises:
            StructuredOutputError: if the backend returns malformed JSON.
        """
        ...

    @abstractmethod
    async def generate_embeddings(self, request: GenerationRequest) -> list[float]:
        """Embedding vector for request.prompt."""
        ...

    @abstractmethod
    async def generate_vision(self, request: GenerationRequest, image: VisionInput) -> str:
        """Describe or answer about an image.

        Raises:
            UnsupportedInputError: if the backend cannot take the image's form.
        """
        ...

    @abstractmethod
    async def _tool_turn(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDeclaration],
        model: Optional[str] = None,
    ) -> tuple[Optional[str], list[RawToolCall]]:
        """One tool-augmented turn with free tool choice.

        Returns the free-text content and the undecoded tool calls.
        """
        ...

    # ------------------------------------------------------------------
    # Shared capabilities
    # ------------------------------------------------------------------

    async def generate_with_tools(
        self,
        messages: Sequence[MessageLike],
        tools: Sequence[ToolLike],
        model: Optional[str] = None,
    ) -> ToolTurn:
        declarations = check_tool_names(coerce_tools(tools))
        content, raw_calls = await self._tool_turn(coerce_messages(messages), declarations, model)
        return ToolTurn(content=content, tool_invocations=decode_tool_calls(raw_calls))

    async def generate_structured_with_tools(
        self,
        messages: Sequence[MessageLike],
        tools: Sequence[ToolLike],
        schema: SchemaLike,
        model: Optional[str] = None,
    ) -> StructuredToolResult:
        """Tool turn that must end in a final_response call.

        Backend and parse failures are reported in the result, not raised.
        """
        augmented = augment_tools(coerce_tools(tools), schema, self.sentinel_description)
        try:
            content, raw_calls = await self._tool_turn(coerce_messages(messages), augmented, model)
        except Exception as exc:
            logger.error("%s structured tool generation failed: %s", self.provider_name, exc)
            return StructuredToolResult(success=False, error=str(exc))
        return assemble_result(raw_calls, content, schema)

    async def generate_vision_structured(
        self,
        request: GenerationRequest,
        image: VisionInput,
        schema: SchemaLike,
    ) -> Any:
        """Describe the image in detail, then extract the schema from the description."""
        description = await self.generate_vision(
            request.with_prompt(vision_describe_prompt(request.prompt)), image,
        )
        extract = request.with_prompt(
            vision_extract_prompt(description), system=request.structuring_instruction,
        )
        return await self.generate_structured(extract, schema)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call(self, operation: str, awaitable) -> Any:
        """Await a backend call, wrapping transport failures."""
        try:
            return await awaitable
        except self.transport_errors as exc:
            logger.error("%s %s failed: %s", self.provider_name, operation, exc)
            raise ProviderTransportError(
                self.provider_name,
                f"{operation} failed: {exc}",
                status_code=self._status_code(exc),
            ) from exc

    @staticmethod
    def _status_code(exc: Exception) -> Optional[int]:
        for attr in ("status_code", "code"):
            value = getattr(exc, attr, None)
            if isinstance(value, int):
                return value
        response = getattr(exc, "response", None)
        value = getattr(response, "status_code", None)
        return value if isinstance(value, int) else None
