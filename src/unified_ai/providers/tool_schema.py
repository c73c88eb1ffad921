"""
Tool Schema Canonicalizer — provider-agnostic tool declarations and calls.

Tools are declared once as ToolDeclaration (canonical parameter schema).
Each provider client converts them to its native format with the outbound
converters below, and converts whatever tool-call payload its backend
returns back into RawToolCall records with the inbound converters.

Public API:
    RawToolCall                              — undecoded call (id, name, raw args)
    parse_tool_arguments(call)               → ToolInvocation
    decode_tool_calls(calls)                 → list[ToolInvocation]

    to_openai_tools(tools)                   → list[dict]
    to_gemini_declarations(tools)            → list[types.FunctionDeclaration]
    to_gemini_schema(schema)                 → dict (upper-case type tokens)
    to_workers_ai_tools(tools)               → list[dict]

    from_openai_tool(data)                   → ToolDeclaration
    from_gemini_declaration(data)            → ToolDeclaration
    from_openai_tool_calls(tool_calls)       → list[RawToolCall]
    from_gemini_function_calls(calls)        → list[RawToolCall]
    from_workers_ai_tool_calls(tool_calls)   → list[RawToolCall]
    extract_text_tool_calls(text, names)     → list[RawToolCall]

    to_openai_tool_call(invocation)          → dict
    to_gemini_function_call(invocation)      → dict
    to_openai_messages(messages, system)     → list[dict]
"""

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from unified_ai.errors import ToolCallParseError
from unified_ai.providers.schema_normalizer import normalize_schema
from unified_ai.types import ChatMessage, ToolDeclaration, ToolInvocation
from unified_ai.utils.sanitizer import clean_json_output

logger = logging.getLogger(__name__)

EMPTY_PARAMETERS = {"type": "object", "properties": {}}

# Keys google-genai's Schema model accepts, in JSON-Schema spelling.
_GEMINI_SCHEMA_KEYS = frozenset({
    "type", "description", "enum", "properties", "items", "required", "nullable",
    "format", "title", "default", "anyOf", "minimum", "maximum", "minItems",
    "maxItems", "minLength", "maxLength", "pattern", "minProperties",
    "maxProperties", "propertyOrdering", "example",
})


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex}"


@dataclass
class RawToolCall:
    """A tool call as the backend returned it, arguments not yet decoded.

    arguments is whatever the backend sent: a JSON string (OpenAI, Workers AI)
    or an already structured mapping (Gemini).
    """
    id: str
    name: str
    arguments: Any = None


def parse_tool_arguments(call: RawToolCall) -> ToolInvocation:
    """Decode a raw call into a ToolInvocation.

    Raises:
        ToolCallParseError: if the arguments are a string that is not JSON.
    """
    args = call.arguments
    if args is None:
        args = {}
    elif isinstance(args, str):
        text = args.strip()
        if not text:
            args = {}
        else:
            try:
                args = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ToolCallParseError(call.name, call.arguments, str(exc)) from exc
    elif not isinstance(args, (dict, list)):
        # proto MapComposite and friends
        args = dict(args)
    return ToolInvocation(id=call.id or new_call_id(), name=call.name, arguments=args)


def decode_tool_calls(calls: Iterable[RawToolCall]) -> list[ToolInvocation]:
    return [parse_tool_arguments(call) for call in calls]


# ---------------------------------------------------------------------------
# OpenAI conversion
# ---------------------------------------------------------------------------

def _parameters_for(tool: ToolDeclaration, provider: str) -> dict:
    params = normalize_schema(tool.parameters, provider)
    if not params:
        return dict(EMPTY_PARAMETERS)
    return params


def to_openai_tools(tools: list[ToolDeclaration]) -> list[dict]:
    """Convert canonical declarations to OpenAI tools format."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": _parameters_for(tool, "openai"),
            },
        }
        for tool in tools
    ]


def from_openai_tool(data: dict) -> ToolDeclaration:
    return ToolDeclaration.from_dict(data)


def from_openai_tool_calls(tool_calls: Optional[list]) -> list[RawToolCall]:
    """Accept SDK ChatCompletionMessageToolCall objects or their dict form.

    Calls whose type is not "function" (e.g. custom tools) are discarded.
    """
    calls = []
    for tc in tool_calls or []:
        if isinstance(tc, dict):
            kind = tc.get("type", "function")
            fn = tc.get("function") or {}
            call_id, name, args = tc.get("id", ""), fn.get("name", ""), fn.get("arguments")
        else:
            kind = getattr(tc, "type", "function") or "function"
            fn = getattr(tc, "function", None)
            if fn is None:
                kind = "unknown"
            call_id = getattr(tc, "id", "") or ""
            name = getattr(fn, "name", "") if fn is not None else ""
            args = getattr(fn, "arguments", None) if fn is not None else None
        if kind != "function":
            logger.debug("Skipping non-function tool call of type %s", kind)
            continue
        calls.append(RawToolCall(id=call_id or new_call_id(), name=name, arguments=args))
    return calls


def to_openai_tool_call(invocation: ToolInvocation) -> dict:
    return {
        "id": invocation.id,
        "type": "function",
        "function": {
            "name": invocation.name,
            "arguments": json.dumps(invocation.arguments),
        },
    }


def to_openai_messages(messages: list[ChatMessage], system: Optional[str] = None) -> list[dict]:
    """Render canonical messages in the OpenAI chat shape.

    Workers AI accepts the same shape for its chat models.
    """
    result = []
    if system:
        result.append({"role": "system", "content": system})
    for msg in messages:
        out: dict[str, Any] = {"role": msg.role, "content": msg.content}
        if msg.tool_calls:
            out["tool_calls"] = [to_openai_tool_call(call) for call in msg.tool_calls]
        if msg.tool_call_id:
            out["tool_call_id"] = msg.tool_call_id
        if msg.name:
            out["name"] = msg.name
        result.append(out)
    return result


# ---------------------------------------------------------------------------
# Gemini conversion
# ---------------------------------------------------------------------------

def to_gemini_schema(schema: Any) -> dict:
    """Flatten a JSON Schema into Gemini's OpenAPI-subset shape.

    Type tokens are upper-cased, ["x", "null"] unions become nullable and
    keys outside Gemini's Schema model are dropped.
    """
    normalized = normalize_schema(schema, "gemini") if schema is not None else None
    if not normalized:
        return {"type": "OBJECT", "properties": {}}
    return _gemini_node(normalized)


def _gemini_node(node: dict) -> dict:
    out: dict[str, Any] = {}
    for key, value in node.items():
        if key not in _GEMINI_SCHEMA_KEYS:
            continue
        if key == "type":
            if isinstance(value, list):
                non_null = [t for t in value if t != "null"]
                if len(non_null) < len(value):
                    out["nullable"] = True
                value = non_null[0] if non_null else "null"
            out["type"] = str(value).upper()
        elif key == "properties" and isinstance(value, dict):
            out["properties"] = {
                name: _gemini_node(sub) if isinstance(sub, dict) else sub
                for name, sub in value.items()
            }
        elif key == "items" and isinstance(value, dict):
            out["items"] = _gemini_node(value)
        elif key == "anyOf" and isinstance(value, list):
            out["anyOf"] = [_gemini_node(sub) for sub in value if isinstance(sub, dict)]
        else:
            out[key] = value
    if "type" not in out and "anyOf" not in out:
        out["type"] = "OBJECT" if "properties" in out else "STRING"
    return out


def to_gemini_declaration(tool: ToolDeclaration) -> dict:
    return {
        "name": tool.name,
        "description": tool.description,
        "parameters": to_gemini_schema(tool.parameters),
    }


def to_gemini_declarations(tools: list[ToolDeclaration]) -> list:
    """Convert canonical declarations to Gemini FunctionDeclaration objects."""
    from google.genai import types

    return [types.FunctionDeclaration(**to_gemini_declaration(tool)) for tool in tools]


def _lower_types(node: Any) -> Any:
    if isinstance(node, dict):
        out = {}
        for key, value in node.items():
            if key == "type" and isinstance(value, str):
                out[key] = value.lower()
            elif key in ("properties",) and isinstance(value, dict):
                out[key] = {name: _lower_types(sub) for name, sub in value.items()}
            elif key in ("items",):
                out[key] = _lower_types(value)
            elif key == "anyOf" and isinstance(value, list):
                out[key] = [_lower_types(sub) for sub in value]
            else:
                out[key] = value
        return out
    return node


def from_gemini_declaration(data: Any) -> ToolDeclaration:
    """Accept a FunctionDeclaration or its dict form."""
    if not isinstance(data, dict):
        data = data.model_dump(exclude_none=True, by_alias=True)
    params = data.get("parameters")
    return ToolDeclaration(
        name=data["name"],
        description=data.get("description", "") or "",
        parameters=_lower_types(params) if params else None,
    )


def from_gemini_function_calls(function_calls: Optional[list]) -> list[RawToolCall]:
    """Gemini function calls carry no id; one is synthesized per call."""
    calls = []
    for fc in function_calls or []:
        if isinstance(fc, dict):
            name, args, call_id = fc.get("name", ""), fc.get("args"), fc.get("id")
        else:
            name, args, call_id = fc.name, fc.args, getattr(fc, "id", None)
        calls.append(RawToolCall(id=call_id or new_call_id(), name=name, arguments=args or {}))
    return calls


def to_gemini_function_call(invocation: ToolInvocation) -> dict:
    args = invocation.arguments if isinstance(invocation.arguments, dict) else {"value": invocation.arguments}
    return {"name": invocation.name, "args": args}


# ---------------------------------------------------------------------------
# Workers AI conversion
# ---------------------------------------------------------------------------

def to_workers_ai_tools(tools: list[ToolDeclaration]) -> list[dict]:
    """Workers AI takes the OpenAI function envelope with a plain JSON Schema."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": _parameters_for(tool, "workers-ai"),
            },
        }
        for tool in tools
    ]


def from_workers_ai_tool_calls(tool_calls: Optional[list]) -> list[RawToolCall]:
    """Workers AI returns either flat {name, arguments} or the OpenAI envelope."""
    calls = []
    for tc in tool_calls or []:
        if not isinstance(tc, dict):
            continue
        if "function" in tc:
            if tc.get("type", "function") != "function":
                continue
            fn = tc.get("function") or {}
            name, args = fn.get("name", ""), fn.get("arguments")
        else:
            name, args = tc.get("name", ""), tc.get("arguments", tc.get("parameters"))
        calls.append(RawToolCall(id=tc.get("id") or new_call_id(), name=name, arguments=args))
    return calls


def extract_text_tool_calls(text: Optional[str], tool_names: Iterable[str]) -> list[RawToolCall]:
    """Recover tool calls some Workers AI models emit as JSON text.

    Only objects naming a declared tool are accepted; anything else is
    treated as ordinary content.
    """
    if not text or not text.strip():
        return []
    try:
        payload = json.loads(clean_json_output(text))
    except json.JSONDecodeError:
        return []

    allowed = set(tool_names)
    candidates = payload if isinstance(payload, list) else [payload]
    calls = []
    for item in candidates:
        if not isinstance(item, dict) or item.get("name") not in allowed:
            return []
        args = item.get("arguments", item.get("parameters", {}))
        calls.append(RawToolCall(id=new_call_id(), name=item["name"], arguments=args))
    return calls
