"""
unified_ai — one capability contract over OpenAI, Gemini and Workers AI.

    from unified_ai import AIDispatcher, GenerationRequest

    dispatcher = AIDispatcher()
    text = await dispatcher.generate_text(GenerationRequest(prompt="Hello", provider="gemini"))
"""

from unified_ai.config import AISettings
from unified_ai.dispatcher import AIDispatcher
from unified_ai.errors import (
    AIProviderError,
    ConfigError,
    EmptyReasoningOutputError,
    EmptyResponseError,
    MissingCredentialError,
    ProviderTransportError,
    SchemaTranslationError,
    SentinelNotInvokedError,
    StructuredOutputError,
    ToolCallParseError,
    UnsupportedInputError,
)
from unified_ai.types import (
    CanonicalSchema,
    ChatMessage,
    GenerationRequest,
    StructuredToolResult,
    ToolDeclaration,
    ToolInvocation,
    ToolTurn,
    VisionInput,
)

__version__ = "0.1.0"

__all__ = [
    "AIDispatcher",
    "AISettings",
    "AIProviderError",
    "CanonicalSchema",
    "ChatMessage",
    "ConfigError",
    "EmptyReasoningOutputError",
    "EmptyResponseError",
    "GenerationRequest",
    "MissingCredentialError",
    "ProviderTransportError",
    "SchemaTranslationError",
    "SentinelNotInvokedError",
    "StructuredOutputError",
    "StructuredToolResult",
    "ToolCallParseError",
    "ToolDeclaration",
    "ToolInvocation",
    "ToolTurn",
    "UnsupportedInputError",
    "VisionInput",
]
