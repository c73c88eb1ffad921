"""
Schema Normalizer — backend-acceptable JSON Schema from a canonical schema.

Accepts a CanonicalSchema, a JSON-Schema dict or a pydantic model class and
returns a deep copy with the keys a given backend rejects removed at every
nesting level. Local $ref pointers are inlined first, since none of the
backends resolve them reliably.

Normalization is idempotent and never removes type, properties, items,
required, enum or description.

Public API:
    FORBIDDEN_KEYS                       — per-provider rejected keys
    to_json_schema(schema)               → dict | None
    normalize_schema(schema, provider)   → dict
    is_strict_compatible(schema)         → bool
    validate_structured(value, schema)   → value or pydantic instance
"""

import copy
import logging
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from unified_ai.errors import SchemaTranslationError, StructuredOutputError
from unified_ai.types import CanonicalSchema, SchemaLike

logger = logging.getLogger(__name__)

# Dialect markers and serializer internals that leak out of schema generators.
_COMMON_FORBIDDEN = frozenset({"$schema", "~standard", "def"})

FORBIDDEN_KEYS: dict[str, frozenset] = {
    "openai": _COMMON_FORBIDDEN,
    "gemini": _COMMON_FORBIDDEN | {"additionalProperties"},
    "workers-ai": _COMMON_FORBIDDEN | {"additionalProperties"},
}

LOAD_BEARING_KEYS = frozenset({"type", "properties", "items", "required", "enum", "description"})

_JSON_TYPES = frozenset({"object", "array", "string", "number", "integer", "boolean", "null"})
_DEF_TABLES = ("$defs", "definitions")
_COMBINATORS = ("anyOf", "oneOf", "allOf")


def to_json_schema(schema: Optional[SchemaLike]) -> Optional[dict]:
    """Render any accepted schema form as a fresh JSON-Schema dict."""
    if schema is None:
        return None
    if isinstance(schema, CanonicalSchema):
        return schema.to_dict()
    if isinstance(schema, dict):
        return copy.deepcopy(schema)
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_json_schema()
    raise SchemaTranslationError(
        f"Unsupported schema type {type(schema).__name__}; "
        "expected CanonicalSchema, dict or a pydantic model class"
    )


def normalize_schema(schema: Optional[SchemaLike], provider: str) -> Optional[dict]:
    """Return a copy of schema that the given backend accepts."""
    forbidden = FORBIDDEN_KEYS.get(provider)
    if forbidden is None:
        raise SchemaTranslationError(f"No schema rules for provider '{provider}'")

    json_schema = to_json_schema(schema)
    if json_schema is None:
        return None

    normalized = _strip(_inline_refs(json_schema), forbidden)
    if provider == "openai":
        normalized = _coerce_object_root(normalized)
    return normalized


def _strip(node: dict, forbidden: frozenset) -> dict:
    out = {}
    for key, value in node.items():
        if key in forbidden:
            continue
        if key == "properties" and isinstance(value, dict):
            out[key] = {
                name: _strip(sub, forbidden) if isinstance(sub, dict) else sub
                for name, sub in value.items()
            }
        elif key == "items" and isinstance(value, dict):
            out[key] = _strip(value, forbidden)
        elif key == "items" and isinstance(value, list):
            out[key] = [_strip(sub, forbidden) if isinstance(sub, dict) else sub for sub in value]
        elif key in _COMBINATORS and isinstance(value, list):
            out[key] = [_strip(sub, forbidden) if isinstance(sub, dict) else sub for sub in value]
        else:
            out[key] = value
    return out


def _coerce_object_root(schema: dict) -> dict:
    """OpenAI requires a usable root type; a missing or bogus one becomes object."""
    root_type = schema.get("type")
    if isinstance(root_type, str) and root_type in _JSON_TYPES:
        return schema
    if isinstance(root_type, list) and root_type:
        return schema
    if "anyOf" in schema or "oneOf" in schema:
        return schema
    coerced = dict(schema)
    coerced["type"] = "object"
    coerced.setdefault("properties", {})
    return coerced


def _inline_refs(schema: dict) -> dict:
    defs: dict[str, Any] = {}
    for table in _DEF_TABLES:
        entries = schema.get(table)
        if isinstance(entries, dict):
            for name, target in entries.items():
                defs[f"#/{table}/{name}"] = target

    root = {k: v for k, v in schema.items() if k not in _DEF_TABLES}

    def resolve(node: Any, seen: frozenset) -> Any:
        if isinstance(node, dict):
            ref = node.get("$ref")
            if isinstance(ref, str):
                if ref in seen:
                    raise SchemaTranslationError(f"Recursive schema reference '{ref}' cannot be inlined")
                target = defs.get(ref)
                if target is None:
                    raise SchemaTranslationError(f"Unresolvable schema reference '{ref}'")
                merged = copy.deepcopy(target)
                merged.update({k: v for k, v in node.items() if k != "$ref"})
                return resolve(merged, seen | {ref})
            return {k: resolve(v, seen) for k, v in node.items()}
        if isinstance(node, list):
            return [resolve(item, seen) for item in node]
        return node

    return resolve(root, frozenset())


def is_strict_compatible(schema: dict) -> bool:
    """True when every object node is closed and requires all its properties."""
    def check(node: Any) -> bool:
        if not isinstance(node, dict):
            return True
        if node.get("type") == "object":
            props = node.get("properties") or {}
            if node.get("additionalProperties") is not False:
                return False
            if set(node.get("required") or ()) != set(props):
                return False
            if not all(check(sub) for sub in props.values()):
                return False
        if "items" in node and not check(node["items"]):
            return False
        return all(check(sub) for key in _COMBINATORS for sub in node.get(key) or ())

    return check(schema)


def validate_structured(value: Any, schema: Optional[SchemaLike]) -> Any:
    """Check a parsed structured value against its schema.

    pydantic model classes validate fully and yield a model instance. Other
    schema forms get a root-level check: objects must be dicts that carry
    every required key.
    """
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        try:
            return schema.model_validate(value)
        except ValidationError as exc:
            raise StructuredOutputError(
                f"Structured output failed validation against {schema.__name__}: {exc}",
                raw=value,
            ) from exc

    json_schema = to_json_schema(schema)
    if json_schema and json_schema.get("type") == "object":
        if not isinstance(value, dict):
            raise StructuredOutputError(
                f"Expected a JSON object, got {type(value).__name__}", raw=value
            )
        missing = [key for key in json_schema.get("required") or () if key not in value]
        if missing:
            raise StructuredOutputError(
                f"Structured output is missing required keys: {', '.join(missing)}", raw=value
            )
    return value
