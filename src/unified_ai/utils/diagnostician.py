"""
Failure diagnostician — asks a model to explain a failed step.

Best effort only: any failure of the diagnostic call itself (including a
missing provider configuration) yields None instead of raising.

Public API:
    HealthFailureAnalysis
    analyze_failure(dispatcher, step_name, error_msg, details=None) → HealthFailureAnalysis | None
"""

import json
import logging
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from unified_ai.types import GenerationRequest

logger = logging.getLogger(__name__)


class ProvidedContext(BaseModel):
    """Input data echoed back by the model."""
    stepName: str
    errorMsg: str
    details: Optional[dict] = None


class HealthFailureAnalysis(BaseModel):
    providedContext: ProvidedContext = Field(
        description="Context provided to the AI. You MUST echo back the input data here.",
    )
    rootCause: str = Field(description="Technical explanation of why it failed")
    suggestedFix: str = Field(description="Actionable command or configuration change to fix it")
    severity: Literal["low", "medium", "critical"] = Field(
        description="Critical = System Down, Medium = Degradation, Low = Minor Warning",
    )
    confidence: float = Field(ge=0, le=1, description="Confidence (0.0 - 1.0) in this diagnosis")
    fixPrompt: str = Field(
        description="A detailed prompt for another AI agent to fix this specific issue",
    )


def build_prompt(step_name: str, error_msg: str, details: Any = None) -> str:
    details_str = json.dumps(details, indent=2, default=str) if details else "None"
    return f"""You are a Site Reliability Engineer invoking a Health Diagnosis Agent.

=== INPUT DATA (MUST ECHO) ===
Step Name: "{step_name}"
Error Message: "{error_msg}"
==============================

=== TECHNICAL DETAILS ===
{details_str}
=========================

Task:
1. READ the "TECHNICAL DETAILS". Find the entry with status "FAILURE".
2. DIAGNOSE the root cause based on that failure (e.g., "Authentication", "Timeout", "Model Refusal").
3. PROVIDE a fix.
4. ECHO the Input Data into the 'providedContext' field EXACTLY as shown above.
5. GENERATE a "Fix Prompt" for a coding agent.

Restrictions:
- You must NOT return "Unknown" for Step Name or Error Message. Use the values provided in "INPUT DATA".
- If details contain a specific error, cite it.
"""


async def analyze_failure(
    dispatcher,
    step_name: str,
    error_msg: str,
    details: Any = None,
    provider: Optional[str] = None,
) -> Optional[HealthFailureAnalysis]:
    """Ask the dispatcher's provider for a root cause and fix.

    Args:
        dispatcher: An AIDispatcher, or None when no AI is configured.
        step_name: Name of the failed step.
        error_msg: The step's error message.
        details: Optional JSON-serializable context.
        provider: Optional provider selector.
    """
    if dispatcher is None:
        return None

    request = GenerationRequest(
        prompt=build_prompt(step_name, error_msg, details),
        reasoning_effort="high",
        provider=provider,
    )
    try:
        return await dispatcher.generate_structured(request, HealthFailureAnalysis)
    except Exception as exc:
        logger.error("AI analysis failed for %s: %s", step_name, exc)
        return None
