"""
Tests for the final_response sentinel convention and the shared
generate_structured_with_tools flow on ProviderClient.
"""

import asyncio
from typing import Optional

import pytest
from pydantic import BaseModel

from unified_ai.errors import ProviderTransportError
from unified_ai.providers.base import ProviderClient
from unified_ai.providers.final_response import (
    FINAL_RESPONSE_TOOL,
    assemble_result,
    augment_tools,
    build_sentinel_tool,
)
from unified_ai.providers.tool_schema import RawToolCall
from unified_ai.types import ChatMessage, ToolDeclaration


class Verdict(BaseModel):
    label: str
    score: float


SCHEMA = {
    "type": "object",
    "properties": {"label": {"type": "string"}, "score": {"type": "number"}},
    "required": ["label", "score"],
}

LOOKUP = ToolDeclaration(name="lookup", description="Look something up")


# ===================================================================
# augment_tools / build_sentinel_tool
# ===================================================================

class TestAugmentTools:

    def test_sentinel_appended_last(self):
        tools = augment_tools([LOOKUP], SCHEMA)
        assert [t.name for t in tools] == ["lookup", FINAL_RESPONSE_TOOL]
        assert tools[-1].parameters == SCHEMA

    def test_caller_list_not_mutated(self):
        caller = [LOOKUP]
        augment_tools(caller, SCHEMA)
        assert caller == [LOOKUP]

    def test_reserved_name_rejected(self):
        with pytest.raises(ValueError, match="reserved"):
            augment_tools([ToolDeclaration(name=FINAL_RESPONSE_TOOL)], SCHEMA)

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            augment_tools([LOOKUP, LOOKUP], SCHEMA)

    def test_pydantic_schema_becomes_json_schema(self):
        sentinel = build_sentinel_tool(Verdict)
        assert sentinel.parameters["properties"]["label"]["type"] == "string"


# ===================================================================
# assemble_result
# ===================================================================

class TestAssembleResult:

    def test_no_sentinel_is_failure_with_other_calls_kept(self):
        result = assemble_result(
            [RawToolCall(id="c1", name="lookup", arguments='{"q": "x"}')], "thinking", SCHEMA,
        )
        assert result.success is False
        assert result.value is None
        assert result.error == "Model did not call final_response tool"
        assert [inv.name for inv in result.tool_invocations] == ["lookup"]
        assert result.content == "thinking"

    def test_no_calls_at_all(self):
        result = assemble_result([], "plain answer", SCHEMA)
        assert result.success is False
        assert result.tool_invocations == []

    def test_sentinel_value_returned(self):
        result = assemble_result(
            [
                RawToolCall(id="c1", name="lookup", arguments="{}"),
                RawToolCall(id="c2", name=FINAL_RESPONSE_TOOL, arguments='{"label": "ok", "score": 0.9}'),
            ],
            None,
            SCHEMA,
        )
        assert result.success is True
        assert result.value == {"label": "ok", "score": 0.9}
        assert [inv.name for inv in result.tool_invocations] == ["lookup"]
        assert result.error is None

    def test_sentinel_value_validated_by_pydantic(self):
        result = assemble_result(
            [RawToolCall(id="c", name=FINAL_RESPONSE_TOOL, arguments={"label": "a", "score": 1})],
            None,
            Verdict,
        )
        assert result.success is True
        assert isinstance(result.value, Verdict)

    def test_malformed_sentinel_arguments_fail(self):
        result = assemble_result(
            [RawToolCall(id="c", name=FINAL_RESPONSE_TOOL, arguments="{label: ok")], None, SCHEMA,
        )
        assert result.success is False
        assert result.value is None
        assert "invalid arguments" in result.error

    def test_sentinel_missing_required_key_fails(self):
        result = assemble_result(
            [RawToolCall(id="c", name=FINAL_RESPONSE_TOOL, arguments='{"label": "ok"}')], None, SCHEMA,
        )
        assert result.success is False
        assert "score" in result.error

    def test_first_sentinel_wins(self):
        result = assemble_result(
            [
                RawToolCall(id="a", name=FINAL_RESPONSE_TOOL, arguments='{"label": "first", "score": 1}'),
                RawToolCall(id="b", name=FINAL_RESPONSE_TOOL, arguments='{"label": "second", "score": 2}'),
            ],
            None,
            SCHEMA,
        )
        assert result.value["label"] == "first"
        assert result.tool_invocations == []

    def test_malformed_ancillary_call_fails(self):
        result = assemble_result(
            [
                RawToolCall(id="a", name="lookup", arguments="{oops"),
                RawToolCall(id="b", name=FINAL_RESPONSE_TOOL, arguments='{"label": "x", "score": 1}'),
            ],
            None,
            SCHEMA,
        )
        assert result.success is False
        assert "lookup" in result.error


# ===================================================================
# ProviderClient.generate_structured_with_tools
# ===================================================================

class _ScriptedClient(ProviderClient):
    """Adapter whose tool turn replays a fixed answer."""

    def __init__(self, settings, content=None, calls=None, error: Optional[Exception] = None):
        super().__init__(settings)
        self._content = content
        self._calls = calls or []
        self._error = error
        self.seen_tools = None

    @property
    def provider_name(self) -> str:
        return "scripted"

    async def generate_text(self, request):
        return "text"

    async def generate_structured(self, request, schema):
        return {}

    async def generate_embeddings(self, request):
        return [0.0]

    async def generate_vision(self, request, image):
        return "an image"

    async def _tool_turn(self, messages, tools, model=None):
        self.seen_tools = tools
        if self._error:
            raise self._error
        return self._content, self._calls


class TestStructuredWithTools:

    def test_sentinel_offered_to_backend(self, settings):
        client = _ScriptedClient(settings)
        asyncio.run(client.generate_structured_with_tools([ChatMessage.user("hi")], [LOOKUP], SCHEMA))
        assert [t.name for t in client.seen_tools] == ["lookup", FINAL_RESPONSE_TOOL]

    def test_dict_inputs_accepted(self, settings):
        client = _ScriptedClient(
            settings,
            calls=[RawToolCall(id="c", name=FINAL_RESPONSE_TOOL, arguments='{"label": "y", "score": 0}')],
        )
        result = asyncio.run(client.generate_structured_with_tools(
            [{"role": "user", "content": "hi"}],
            [{"type": "function", "function": {"name": "lookup", "description": "", "parameters": {}}}],
            SCHEMA,
        ))
        assert result.success is True
        assert result.value == {"label": "y", "score": 0}

    def test_backend_error_reported_not_raised(self, settings):
        client = _ScriptedClient(settings, error=ProviderTransportError("scripted", "boom", 500))
        result = asyncio.run(client.generate_structured_with_tools([ChatMessage.user("hi")], [], SCHEMA))
        assert result.success is False
        assert "boom" in result.error

    def test_unexpected_error_reported_not_raised(self, settings, caplog):
        client = _ScriptedClient(settings, error=RuntimeError("socket closed"))
        result = asyncio.run(client.generate_structured_with_tools([ChatMessage.user("hi")], [], SCHEMA))
        assert result.success is False
        assert result.error == "socket closed"
        assert "structured tool generation failed" in caplog.text

    def test_reserved_tool_name_raises(self, settings):
        client = _ScriptedClient(settings)
        with pytest.raises(ValueError):
            asyncio.run(client.generate_structured_with_tools(
                [ChatMessage.user("hi")], [ToolDeclaration(name=FINAL_RESPONSE_TOOL)], SCHEMA,
            ))

    def test_plain_tool_turn_decodes_calls(self, settings):
        client = _ScriptedClient(
            settings, content=None, calls=[RawToolCall(id="c", name="lookup", arguments='{"q": 1}')],
        )
        turn = asyncio.run(client.generate_with_tools([ChatMessage.user("hi")], [LOOKUP]))
        assert turn.has_tool_calls
        assert turn.tool_invocations[0].arguments == {"q": 1}

    def test_plain_tool_turn_rejects_duplicate_names(self, settings):
        client = _ScriptedClient(settings)
        with pytest.raises(ValueError, match="Duplicate tool name 'lookup'"):
            asyncio.run(client.generate_with_tools([ChatMessage.user("hi")], [LOOKUP, LOOKUP]))
        assert client.seen_tools is None
