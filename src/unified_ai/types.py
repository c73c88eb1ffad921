"""
Canonical data shapes shared by every provider adapter.

Callers build requests, schemas and tool declarations from these classes;
adapters translate them to and from their backend's wire format at a single
crossing point so nothing else in the package sees backend-shaped payloads.

Public API:
    CanonicalSchema      — backend-independent JSON-Schema-like tree
    ToolDeclaration      — tool name/description/parameter schema
    ToolInvocation       — one tool call requested by a backend
    ChatMessage          — one conversation turn
    VisionInput          — inline (base64) or remote (URL) image
    GenerationRequest    — transient per-call request
    ToolTurn             — result of a tool-augmented turn
    StructuredToolResult — result of a final_response turn
"""

import base64
import binascii
import json
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Union

from unified_ai.errors import ToolCallParseError, UnsupportedInputError

REASONING_EFFORTS = ("low", "medium", "high")
MESSAGE_ROLES = ("user", "assistant", "system", "tool")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

@dataclass
class CanonicalSchema:
    """Backend-independent schema node.

    Example:
        CanonicalSchema(
            type="object",
            properties={
                "a": CanonicalSchema(type="string"),
                "b": CanonicalSchema(type="number"),
            },
            required=frozenset({"a", "b"}),
        )
    """
    type: str = "object"
    properties: dict[str, "CanonicalSchema"] = field(default_factory=dict)
    items: Optional["CanonicalSchema"] = None
    required: frozenset = field(default_factory=frozenset)
    enum: Optional[list] = None
    description: Optional[str] = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"type": self.type}
        if self.description:
            out["description"] = self.description
        if self.enum is not None:
            out["enum"] = list(self.enum)
        if self.type == "object" or self.properties:
            out["properties"] = {name: prop.to_dict() for name, prop in self.properties.items()}
            ordered = [name for name in self.properties if name in self.required]
            extra = sorted(name for name in self.required if name not in self.properties)
            if ordered or extra:
                out["required"] = ordered + extra
        if self.items is not None:
            out["items"] = self.items.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "CanonicalSchema":
        raw_type = data.get("type")
        if isinstance(raw_type, list):
            raw_type = next((t for t in raw_type if t != "null"), None)
        if not raw_type:
            raw_type = "object" if "properties" in data else "string"
        items = data.get("items")
        return cls(
            type=str(raw_type).lower(),
            properties={
                name: cls.from_dict(prop)
                for name, prop in (data.get("properties") or {}).items()
            },
            items=cls.from_dict(items) if isinstance(items, dict) else None,
            required=frozenset(data.get("required") or ()),
            enum=list(data["enum"]) if data.get("enum") is not None else None,
            description=data.get("description"),
        )


# A schema may be a CanonicalSchema, a JSON-Schema dict or a pydantic model class.
SchemaLike = Union[CanonicalSchema, dict, type]


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@dataclass
class ToolDeclaration:
    """Provider-agnostic tool/function declaration."""
    name: str
    description: str = ""
    parameters: Optional[SchemaLike] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ToolDeclaration":
        """Accept either a flat declaration or an OpenAI-style function envelope."""
        if data.get("type") == "function" and isinstance(data.get("function"), dict):
            data = data["function"]
        parameters = data.get("parameters")
        if parameters is None:
            parameters = data.get("input_schema")
        return cls(
            name=data["name"],
            description=data.get("description", "") or "",
            parameters=parameters,
        )


@dataclass
class ToolInvocation:
    """Canonical record of one tool call. Produced by adapters only."""
    id: str
    name: str
    arguments: Any = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


# ---------------------------------------------------------------------------
# Messages & inputs
# ---------------------------------------------------------------------------

@dataclass
class ChatMessage:
    """One conversation turn in canonical form."""
    role: str
    content: Optional[str] = None
    tool_calls: list[ToolInvocation] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self):
        if self.role not in MESSAGE_ROLES:
            raise ValueError(
                f"Unknown message role '{self.role}'. Expected one of: {', '.join(MESSAGE_ROLES)}"
            )

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content)

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content)

    @classmethod
    def from_dict(cls, data: dict) -> "ChatMessage":
        calls = []
        for raw in data.get("tool_calls") or []:
            if isinstance(raw, ToolInvocation):
                calls.append(raw)
                continue
            fn = raw.get("function") if isinstance(raw.get("function"), dict) else raw
            args = fn.get("arguments", {})
            if isinstance(args, str):
                try:
                    args = json.loads(args) if args.strip() else {}
                except json.JSONDecodeError as exc:
                    raise ToolCallParseError(fn.get("name", ""), args, str(exc)) from exc
            calls.append(ToolInvocation(id=raw.get("id", ""), name=fn.get("name", ""), arguments=args))
        return cls(
            role=data.get("role", "user"),
            content=data.get("content"),
            tool_calls=calls,
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class VisionInput:
    """Image handed to a vision model.

    kind is "inline" (base64 data, optionally a data: URL) or "url"
    (remote reference).
    """
    kind: str
    data: str
    mime_type: Optional[str] = None

    def __post_init__(self):
        if self.kind not in ("inline", "url"):
            raise ValueError(f"Unknown vision input kind '{self.kind}'")

    @classmethod
    def from_base64(cls, data: str, mime_type: str = "image/jpeg") -> "VisionInput":
        return cls(kind="inline", data=data, mime_type=mime_type)

    @classmethod
    def from_url(cls, url: str) -> "VisionInput":
        return cls(kind="url", data=url)

    @property
    def effective_mime_type(self) -> str:
        if self.data.startswith("data:") and ";" in self.data:
            return self.data[5:self.data.index(";")]
        return self.mime_type or "image/jpeg"

    def base64_payload(self) -> str:
        """Return the bare base64 text, without any data: URL prefix."""
        if self.kind != "inline":
            raise UnsupportedInputError("Remote image references have no inline payload")
        if self.data.startswith("data:") and "," in self.data:
            return self.data.split(",", 1)[1]
        return self.data

    def as_bytes(self) -> bytes:
        try:
            return base64.b64decode(self.base64_payload(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise UnsupportedInputError(f"Inline image data is not valid base64: {exc}") from exc

    def data_url(self) -> str:
        if self.kind == "url" or self.data.startswith("data:"):
            return self.data
        return f"data:{self.effective_mime_type};base64,{self.data}"


@dataclass
class GenerationRequest:
    """Transient request for one capability call. Never persisted."""
    prompt: str = ""
    messages: list[ChatMessage] = field(default_factory=list)
    system: Optional[str] = None
    reasoning_effort: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    output_dimensionality: Optional[int] = None
    structuring_instruction: Optional[str] = None

    def __post_init__(self):
        if self.reasoning_effort is not None and self.reasoning_effort not in REASONING_EFFORTS:
            raise ValueError(
                f"reasoning_effort must be one of {REASONING_EFFORTS}, got '{self.reasoning_effort}'"
            )
        self.messages = [
            m if isinstance(m, ChatMessage) else ChatMessage.from_dict(m)
            for m in self.messages
        ]

    def conversation(self) -> list[ChatMessage]:
        """Messages to send: the explicit sequence, or the prompt as one user turn."""
        if self.messages:
            return list(self.messages)
        return [ChatMessage.user(self.prompt)]

    def with_prompt(self, prompt: str, system: Optional[str] = None) -> "GenerationRequest":
        return replace(self, prompt=prompt, messages=[], system=system)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class ToolTurn:
    """Result of a tool-augmented turn."""
    content: Optional[str] = None
    tool_invocations: list[ToolInvocation] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_invocations) > 0


@dataclass
class StructuredToolResult:
    """Result of a final_response turn.

    success is True exactly when the sentinel tool was invoked and its
    arguments parsed into a valid value.
    """
    success: bool
    value: Any = None
    tool_invocations: list[ToolInvocation] = field(default_factory=list)
    content: Optional[str] = None
    error: Optional[str] = None
