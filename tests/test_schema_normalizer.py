"""
Tests for the Schema Normalizer.

Covers: per-provider forbidden-key stripping at every depth, idempotence,
load-bearing keys, $ref inlining, OpenAI root coercion, strict-mode
detection and structured-value validation.
"""

from typing import Optional

import pytest
from pydantic import BaseModel

from unified_ai.errors import SchemaTranslationError, StructuredOutputError
from unified_ai.providers.schema_normalizer import (
    FORBIDDEN_KEYS,
    LOAD_BEARING_KEYS,
    is_strict_compatible,
    normalize_schema,
    to_json_schema,
    validate_structured,
)
from unified_ai.types import CanonicalSchema


def _all_keys(node, found=None):
    """Collect every key used by a schema node or any nested schema node."""
    found = set() if found is None else found
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "properties" and isinstance(value, dict):
                for sub in value.values():
                    _all_keys(sub, found)
                found.add(key)
                continue
            found.add(key)
            _all_keys(value, found)
    elif isinstance(node, list):
        for item in node:
            _all_keys(item, found)
    return found


@pytest.fixture
def dirty_schema():
    return {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "~standard": {"vendor": "zod"},
        "type": "object",
        "additionalProperties": False,
        "description": "An order",
        "properties": {
            "customer": {
                "type": "object",
                "additionalProperties": False,
                "def": {"typeName": "ZodObject"},
                "properties": {
                    "name": {"type": "string", "$schema": "x"},
                    "tier": {"type": "string", "enum": ["free", "pro"]},
                },
                "required": ["name"],
            },
            "lines": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "~standard": {},
                    "properties": {"sku": {"type": "string"}, "qty": {"type": "integer"}},
                    "required": ["sku", "qty"],
                },
            },
        },
        "required": ["customer", "lines"],
    }


# ===================================================================
# Forbidden keys
# ===================================================================

class TestForbiddenKeys:

    @pytest.mark.parametrize("provider", sorted(FORBIDDEN_KEYS))
    def test_stripped_at_every_depth(self, provider, dirty_schema):
        normalized = normalize_schema(dirty_schema, provider)
        assert not (_all_keys(normalized) & FORBIDDEN_KEYS[provider])

    def test_openai_keeps_additional_properties(self, dirty_schema):
        normalized = normalize_schema(dirty_schema, "openai")
        assert normalized["additionalProperties"] is False
        assert normalized["properties"]["lines"]["items"]["additionalProperties"] is False

    def test_gemini_drops_additional_properties(self, dirty_schema):
        normalized = normalize_schema(dirty_schema, "gemini")
        assert "additionalProperties" not in normalized
        assert "additionalProperties" not in normalized["properties"]["customer"]
        assert "additionalProperties" not in normalized["properties"]["lines"]["items"]

    def test_property_named_like_forbidden_key_survives(self):
        schema = {"type": "object", "properties": {"def": {"type": "string"}}}
        assert "def" in normalize_schema(schema, "workers-ai")["properties"]

    def test_combinator_branches_are_cleaned(self):
        schema = {"anyOf": [{"type": "string", "$schema": "x"}, {"type": "null"}]}
        normalized = normalize_schema(schema, "gemini")
        assert normalized["anyOf"][0] == {"type": "string"}

    def test_input_not_mutated(self, dirty_schema):
        normalize_schema(dirty_schema, "gemini")
        assert "$schema" in dirty_schema
        assert "def" in dirty_schema["properties"]["customer"]

    def test_unknown_provider_raises(self, dirty_schema):
        with pytest.raises(SchemaTranslationError):
            normalize_schema(dirty_schema, "anthropic")


# ===================================================================
# Idempotence & load-bearing keys
# ===================================================================

class TestIdempotence:

    @pytest.mark.parametrize("provider", sorted(FORBIDDEN_KEYS))
    def test_normalize_twice_is_noop(self, provider, dirty_schema):
        once = normalize_schema(dirty_schema, provider)
        assert normalize_schema(once, provider) == once

    @pytest.mark.parametrize("provider", sorted(FORBIDDEN_KEYS))
    def test_load_bearing_keys_kept(self, provider, dirty_schema):
        normalized = normalize_schema(dirty_schema, provider)
        assert LOAD_BEARING_KEYS <= _all_keys(normalized)
        customer = normalized["properties"]["customer"]
        assert customer["properties"]["tier"]["enum"] == ["free", "pro"]
        assert customer["required"] == ["name"]
        assert normalized["description"] == "An order"


# ===================================================================
# Schema forms
# ===================================================================

class Address(BaseModel):
    city: str
    zip_code: Optional[str] = None


class Person(BaseModel):
    name: str
    address: Address
    tags: list[str] = []


class TreeNode(BaseModel):
    label: str
    children: list["TreeNode"] = []


class TestSchemaForms:

    def test_canonical_schema(self):
        schema = CanonicalSchema(
            properties={"a": CanonicalSchema(type="string"), "b": CanonicalSchema(type="number")},
            required=frozenset({"a", "b"}),
        )
        normalized = normalize_schema(schema, "openai")
        assert normalized == {
            "type": "object",
            "properties": {"a": {"type": "string"}, "b": {"type": "number"}},
            "required": ["a", "b"],
        }

    def test_pydantic_refs_are_inlined(self):
        normalized = normalize_schema(Person, "gemini")
        assert "$defs" not in normalized
        address = normalized["properties"]["address"]
        assert "$ref" not in address
        assert address["properties"]["city"]["type"] == "string"

    def test_recursive_ref_raises(self):
        with pytest.raises(SchemaTranslationError, match="Recursive"):
            normalize_schema(TreeNode, "openai")

    def test_unresolvable_ref_raises(self):
        schema = {"type": "object", "properties": {"x": {"$ref": "#/$defs/Missing"}}}
        with pytest.raises(SchemaTranslationError, match="Unresolvable"):
            normalize_schema(schema, "workers-ai")

    def test_unsupported_schema_type_raises(self):
        with pytest.raises(SchemaTranslationError):
            to_json_schema(42)

    def test_none_stays_none(self):
        assert normalize_schema(None, "openai") is None


# ===================================================================
# OpenAI specifics
# ===================================================================

class TestOpenAIRules:

    @pytest.mark.parametrize("schema", [{}, {"type": "None"}, {"properties": {"q": {"type": "string"}}}])
    def test_root_coerced_to_object(self, schema):
        normalized = normalize_schema(schema, "openai")
        assert normalized["type"] == "object"
        assert "properties" in normalized

    def test_valid_root_type_left_alone(self):
        assert normalize_schema({"type": "string"}, "openai") == {"type": "string"}

    def test_strict_compatible(self):
        schema = {
            "type": "object",
            "additionalProperties": False,
            "properties": {"a": {"type": "string"}},
            "required": ["a"],
        }
        assert is_strict_compatible(schema) is True

    def test_not_strict_when_optional_property(self):
        schema = {
            "type": "object",
            "additionalProperties": False,
            "properties": {"a": {"type": "string"}, "b": {"type": "number"}},
            "required": ["a"],
        }
        assert is_strict_compatible(schema) is False

    def test_not_strict_when_open_object(self):
        schema = {"type": "object", "properties": {}, "required": []}
        assert is_strict_compatible(schema) is False


# ===================================================================
# Validation
# ===================================================================

class TestValidateStructured:

    def test_pydantic_model_returns_instance(self):
        person = validate_structured({"name": "Ada", "address": {"city": "London"}}, Person)
        assert isinstance(person, Person)
        assert person.address.city == "London"

    def test_pydantic_validation_failure(self):
        with pytest.raises(StructuredOutputError):
            validate_structured({"name": "Ada"}, Person)

    def test_missing_required_key(self):
        schema = {"type": "object", "properties": {"a": {"type": "string"}}, "required": ["a"]}
        with pytest.raises(StructuredOutputError, match="missing required keys: a"):
            validate_structured({}, schema)

    def test_non_object_for_object_schema(self):
        with pytest.raises(StructuredOutputError):
            validate_structured(["a"], {"type": "object", "properties": {}})

    def test_dict_passes_through(self):
        value = {"a": "x", "b": 1}
        assert validate_structured(value, {"type": "object", "required": ["a", "b"]}) is value
