"""
Tests for two-phase (reason, then structure) generation.
"""

import asyncio

import pytest

from unified_ai.errors import EmptyReasoningOutputError, StructuredOutputError
from unified_ai.providers.two_phase import (
    REASONING_INSTRUCTION,
    STRUCTURING_INSTRUCTION,
    run_two_phase,
    structuring_prompt,
)
from unified_ai.types import GenerationRequest


class _Recorder:
    """Async callable that records requests and returns a canned answer."""

    def __init__(self, answer):
        self.answer = answer
        self.requests = []

    async def __call__(self, request):
        self.requests.append(request)
        return self.answer


class TestRunTwoPhase:

    def test_phase_one_is_unconstrained_reasoning(self):
        reason, structure = _Recorder("A long analysis."), _Recorder('{"a": 1}')
        asyncio.run(run_two_phase(reason, structure, GenerationRequest(prompt="Assess this")))
        (phase_one,) = reason.requests
        assert phase_one.prompt == "Assess this"
        assert phase_one.system == REASONING_INSTRUCTION
        assert phase_one.reasoning_effort == "high"

    def test_caller_effort_kept(self):
        reason, structure = _Recorder("analysis"), _Recorder("{}")
        asyncio.run(run_two_phase(reason, structure, GenerationRequest(prompt="x", reasoning_effort="low")))
        assert reason.requests[0].reasoning_effort == "low"

    def test_phase_two_receives_analysis(self):
        reason, structure = _Recorder("The total is 42."), _Recorder('{"total": 42}')
        result = asyncio.run(run_two_phase(reason, structure, GenerationRequest(prompt="x")))
        (phase_two,) = structure.requests
        assert phase_two.prompt == structuring_prompt("The total is 42.")
        assert phase_two.system == STRUCTURING_INSTRUCTION
        assert result == {"total": 42}

    def test_caller_system_guides_phase_two(self):
        reason, structure = _Recorder("analysis"), _Recorder("{}")
        request = GenerationRequest(prompt="x", system="Only the numbers.")
        asyncio.run(run_two_phase(reason, structure, request))
        assert structure.requests[0].system == "Only the numbers."

    @pytest.mark.parametrize("blank", ["", "   \n\t", None])
    def test_blank_reasoning_stops_before_phase_two(self, blank):
        reason, structure = _Recorder(blank), _Recorder("{}")
        with pytest.raises(EmptyReasoningOutputError):
            asyncio.run(run_two_phase(reason, structure, GenerationRequest(prompt="x")))
        assert structure.requests == []

    def test_fenced_json_parsed(self):
        reason, structure = _Recorder("analysis"), _Recorder('```json\n{"ok": true}\n```')
        assert asyncio.run(run_two_phase(reason, structure, GenerationRequest(prompt="x"))) == {"ok": True}

    def test_structured_value_passes_through(self):
        reason, structure = _Recorder("analysis"), _Recorder({"already": "parsed"})
        assert asyncio.run(run_two_phase(reason, structure, GenerationRequest(prompt="x"))) == {"already": "parsed"}

    def test_malformed_json_raises(self):
        reason, structure = _Recorder("analysis"), _Recorder("not json at all")
        with pytest.raises(StructuredOutputError, match="malformed JSON"):
            asyncio.run(run_two_phase(reason, structure, GenerationRequest(prompt="x")))
