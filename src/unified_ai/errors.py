"""
Errors raised by the unified AI capability layer.

Every exception derives from AIProviderError so callers can catch the whole
family at the dispatcher boundary. SDK and HTTP failures are wrapped in
ProviderTransportError by the adapters; nothing backend-specific escapes.
"""

from typing import Any, Optional


class AIProviderError(RuntimeError):
    """Base error for provider-layer failures."""


class ConfigError(AIProviderError):
    """Raised when a configuration value is present but malformed."""


class MissingCredentialError(AIProviderError):
    """Raised when a required secret or account setting is absent."""


class ProviderTransportError(AIProviderError):
    """Raised when a backend HTTP/network call fails."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class SchemaTranslationError(AIProviderError):
    """Raised when a schema cannot be made acceptable to a backend."""


class ToolCallParseError(AIProviderError, ValueError):
    """Raised when a backend returns malformed arguments for a tool call."""

    def __init__(self, tool_name: str, raw_arguments: Any, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Could not parse arguments for tool '{tool_name}'{detail}")
        self.tool_name = tool_name
        self.raw_arguments = raw_arguments


class SentinelNotInvokedError(AIProviderError):
    """Raised (or reported) when the model never called the final_response tool."""

    def __init__(self, message: str = "Model did not call final_response tool"):
        super().__init__(message)


class EmptyReasoningOutputError(AIProviderError):
    """Raised when the reasoning pass of two-phase generation returns nothing."""


class EmptyResponseError(AIProviderError):
    """Raised when a backend answers without a usable payload."""


class StructuredOutputError(AIProviderError, ValueError):
    """Raised when structured output is not valid JSON or fails validation."""

    def __init__(self, message: str, raw: Any = None):
        super().__init__(message)
        self.raw = raw


class UnsupportedInputError(AIProviderError, ValueError):
    """Raised when a backend cannot accept the given input form."""
