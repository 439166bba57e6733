"""Deterministic stand-ins for evaluations the model could not produce.

Both functions are pure and total. Synthetic entries are marked invalid in
their preliminary analysis so the overall fallback scorer never counts them
as evidence of the candidate's level.
"""

from __future__ import annotations

from stage_eval.models.evaluation import (
    EvaluationRequest,
    Improvement,
    IndividualEvaluation,
    PerformanceLevel,
    PreliminaryAnalysis,
    Strength,
)

FALLBACK_LEVEL = PerformanceLevel.SCREENWRITER
FALLBACK_REASON = "Automatic evaluation unavailable; generic feedback provided."

_GENERIC_STRENGTH = Strength(
    competency="Engagement",
    description="Responded to the question and attempted to address its core topic.",
)
_GENERIC_IMPROVEMENT = Improvement(
    competency="Structured reasoning",
    suggestion=(
        "Lay out the problem, your approach and the expected outcome explicitly, "
        "backed by a concrete example."
    ),
    example=(
        "State the user problem first, then walk through the solution and the "
        "metric you would use to judge it."
    ),
)


def _reason_text(failure_reason: object | None) -> str | None:
    if failure_reason is None:
        return None
    try:
        text = str(failure_reason)
    except Exception:
        text = repr(type(failure_reason))
    return text or type(failure_reason).__name__


def generate_fallback_evaluation(
    request: EvaluationRequest, failure_reason: object | None = None
) -> IndividualEvaluation:
    topic = request.question.strip().splitlines()[0][:60] if request.question.strip() else ""
    summary = (
        f"This answer could not be scored automatically ({topic})."
        if topic
        else "This answer could not be scored automatically."
    )
    key_point = request.key_points[0] if request.key_points else None
    improvements = (_GENERIC_IMPROVEMENT,)
    if key_point:
        improvements += (
            Improvement(
                competency=key_point,
                suggestion=f"Review the answer against this key point: {key_point}.",
                example="Tie each claim back to the question's goal with one specific case.",
            ),
        )
    return IndividualEvaluation(
        performance_level=FALLBACK_LEVEL,
        summary=summary,
        strengths=(_GENERIC_STRENGTH,),
        improvements=improvements,
        preliminary_analysis=PreliminaryAnalysis(
            is_valid=False, reason=FALLBACK_REASON, should_continue=False
        ),
        failure_reason=_reason_text(failure_reason),
        is_fallback=True,
    )


def last_resort_evaluation(failure_reason: object | None = None) -> IndividualEvaluation:
    """Built from constants only; used when the regular fallback itself fails."""
    return IndividualEvaluation(
        performance_level=FALLBACK_LEVEL,
        summary="This answer could not be scored automatically.",
        strengths=(_GENERIC_STRENGTH,),
        improvements=(_GENERIC_IMPROVEMENT,),
        preliminary_analysis=PreliminaryAnalysis(
            is_valid=False, reason=FALLBACK_REASON, should_continue=False
        ),
        failure_reason=_reason_text(failure_reason),
        is_fallback=True,
    )
