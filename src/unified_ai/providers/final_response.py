"""
Final-response tool — a schema-validated terminal answer from a tool turn.

A synthetic tool named "final_response", whose parameters are the caller's
target schema, is appended to the caller's tools. The model may call any
number of ordinary tools and then the sentinel; the sentinel's arguments
become the structured value.

Public API:
    FINAL_RESPONSE_TOOL
    build_sentinel_tool(schema, description=...)   → ToolDeclaration
    check_tool_names(tools)                        → list[ToolDeclaration]
    augment_tools(tools, schema, description=...)  → list[ToolDeclaration]
    assemble_result(raw_calls, content, schema)    → StructuredToolResult
"""

import logging
from typing import Optional

from unified_ai.errors import AIProviderError, SentinelNotInvokedError, ToolCallParseError
from unified_ai.providers.schema_normalizer import to_json_schema, validate_structured
from unified_ai.providers.tool_schema import RawToolCall, decode_tool_calls, parse_tool_arguments
from unified_ai.types import SchemaLike, StructuredToolResult, ToolDeclaration

logger = logging.getLogger(__name__)

FINAL_RESPONSE_TOOL = "final_response"
DEFAULT_DESCRIPTION = "Call this tool to provide the final structured response."


def build_sentinel_tool(schema: SchemaLike, description: str = DEFAULT_DESCRIPTION) -> ToolDeclaration:
    return ToolDeclaration(
        name=FINAL_RESPONSE_TOOL,
        description=description,
        parameters=to_json_schema(schema),
    )


def check_tool_names(tools: list[ToolDeclaration]) -> list[ToolDeclaration]:
    """Return the tools unchanged, raising ValueError if two share a name."""
    seen = set()
    for tool in tools:
        if tool.name in seen:
            raise ValueError(f"Duplicate tool name '{tool.name}'")
        seen.add(tool.name)
    return tools


def augment_tools(
    tools: list[ToolDeclaration],
    schema: SchemaLike,
    description: str = DEFAULT_DESCRIPTION,
) -> list[ToolDeclaration]:
    """Return the caller's tools plus the sentinel.

    Raises:
        ValueError: if a caller tool uses the reserved name or two tools share a name.
    """
    if any(tool.name == FINAL_RESPONSE_TOOL for tool in tools):
        raise ValueError(f"Tool name '{FINAL_RESPONSE_TOOL}' is reserved")
    return list(check_tool_names(tools)) + [build_sentinel_tool(schema, description)]


def assemble_result(
    raw_calls: list[RawToolCall],
    content: Optional[str],
    schema: SchemaLike,
) -> StructuredToolResult:
    """Split a turn's calls into the sentinel value and ancillary invocations.

    Never raises for model misbehavior: a missing sentinel, unparseable
    sentinel arguments or arguments that fail validation all produce
    success=False with the reason in error.
    """
    sentinel = next((c for c in raw_calls if c.name == FINAL_RESPONSE_TOOL), None)
    others = [c for c in raw_calls if c.name != FINAL_RESPONSE_TOOL]

    try:
        ancillary = decode_tool_calls(others)
    except ToolCallParseError as exc:
        logger.warning("Ancillary tool call could not be decoded: %s", exc)
        return StructuredToolResult(success=False, content=content, error=str(exc))

    if sentinel is None:
        error = str(SentinelNotInvokedError())
        logger.warning("%s (%d other tool call(s))", error, len(ancillary))
        return StructuredToolResult(
            success=False, tool_invocations=ancillary, content=content, error=error,
        )

    try:
        value = validate_structured(parse_tool_arguments(sentinel).arguments, schema)
    except (ToolCallParseError, AIProviderError) as exc:
        logger.warning("final_response arguments rejected: %s", exc)
        return StructuredToolResult(
            success=False,
            tool_invocations=ancillary,
            content=content,
            error=f"Model called {FINAL_RESPONSE_TOOL} with invalid arguments: {exc}",
        )

    return StructuredToolResult(
        success=True, value=value, tool_invocations=ancillary, content=content,
    )
