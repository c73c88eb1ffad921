"""
Two-phase structured generation: reason freely, then structure.

Phase 1 asks for a comprehensive plain-text analysis of the prompt with no
schema constraint. Phase 2 feeds that analysis to a schema-constrained call
that only extracts and reformats. Blank Phase 1 output is fatal and Phase 2
is never attempted.

Public API:
    REASONING_INSTRUCTION, STRUCTURING_INSTRUCTION
    structuring_prompt(reasoning)                     → str
    run_two_phase(reason, structure, request)         → Any (awaitable)
"""

import logging
from typing import Any, Awaitable, Callable

from unified_ai.errors import EmptyReasoningOutputError
from unified_ai.types import GenerationRequest
from unified_ai.utils.sanitizer import parse_json_output

logger = logging.getLogger(__name__)

REASONING_INSTRUCTION = (
    "Analyze the following input comprehensively. "
    "Provide a detailed analysis that covers all aspects required."
)
STRUCTURING_INSTRUCTION = (
    "Extract information from the analysis and format it strictly according to the JSON schema."
)
DEFAULT_REASONING_EFFORT = "high"


def structuring_prompt(reasoning: str) -> str:
    return f"Analysis Content:\n{reasoning}"


async def run_two_phase(
    reason: Callable[[GenerationRequest], Awaitable[str]],
    structure: Callable[[GenerationRequest], Awaitable[Any]],
    request: GenerationRequest,
) -> Any:
    """Run both phases and return the parsed structured value.

    Args:
        reason: Plain text generation, called with the Phase 1 request.
        structure: Schema-constrained call, called with the Phase 2 request.
            May return a structured value or JSON text.
        request: The caller's request. Its system prompt (or
            structuring_instruction) guides Phase 2.

    Raises:
        EmptyReasoningOutputError: if Phase 1 returns blank text.
        StructuredOutputError: if Phase 2 text is not valid JSON.
    """
    phase_one = GenerationRequest(
        prompt=request.prompt,
        messages=list(request.messages),
        system=REASONING_INSTRUCTION,
        reasoning_effort=request.reasoning_effort or DEFAULT_REASONING_EFFORT,
        model=request.model,
        provider=request.provider,
    )
    reasoning = await reason(phase_one)
    if not reasoning or not reasoning.strip():
        raise EmptyReasoningOutputError("Reasoning model returned no content.")

    logger.debug("Two-phase reasoning produced %d chars", len(reasoning))
    instruction = request.system or request.structuring_instruction or STRUCTURING_INSTRUCTION
    phase_two = request.with_prompt(structuring_prompt(reasoning), system=instruction)
    raw = await structure(phase_two)
    return parse_json_output(raw)
