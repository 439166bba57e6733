from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

import httpx

from stage_eval.clients.llm import LLMError, SummaryClient
from stage_eval.config import SettingsError, load_settings
from stage_eval.models.evaluation import (
    IndividualEvaluation,
    OverallSummary,
    PerformanceLevel,
    StageInfo,
)
from stage_eval.services.llm_parsing import (
    extract_json_object,
    parse_improvements,
    parse_strengths,
)
from stage_eval.telemetry.otel import start_span
from stage_eval.telemetry.tracing import emit_event

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are the director of AI product manager interviews. Based on several "
    "single-question evaluation reports, write one comprehensive, structured "
    "overall evaluation. Output strictly the requested JSON object."
)
MIN_SUMMARY_ITEMS = 2
MAX_SUMMARY_ITEMS = 3
DEFAULT_FIELD_LIMIT = 500


def _clip(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: max(limit - 1, 0)].rstrip() + "…"


def _format_evaluation(index: int, evaluation: IndividualEvaluation, limit: int) -> str:
    strengths = ", ".join(item.description for item in evaluation.strengths)
    improvements = ", ".join(item.suggestion for item in evaluation.improvements)
    return (
        f"--- Question {index} ---\n"
        f"Performance level: {evaluation.performance_level.value}\n"
        f"Summary: {_clip(evaluation.summary, limit)}\n"
        f"Strengths: {_clip(strengths, limit) or 'None noted'}\n"
        f"Improvements: {_clip(improvements, limit) or 'None noted'}"
    )


def build_overall_summary_prompt(
    evaluations: Sequence[IndividualEvaluation],
    stage_info: StageInfo,
    *,
    field_limit: int = DEFAULT_FIELD_LIMIT,
) -> str:
    """Render the aggregation prompt.

    Every free-text field taken from an evaluation is whitespace-normalised and
    capped at ``field_limit`` characters. All evaluations are always included,
    in input order.
    """
    evaluations_text = "\n\n".join(
        _format_evaluation(index, evaluation, field_limit)
        for index, evaluation in enumerate(evaluations, start=1)
    )
    levels = ", ".join(f'"{level.value}"' for level in reversed(PerformanceLevel.ranked()))
    return (
        "# Task: overall evaluation of an AI product interview stage\n\n"
        "## 1. Background\n"
        f"- Stage: {stage_info.stage_title} ({stage_info.stage_type})\n"
        f"- Number of evaluation reports: {len(evaluations)}\n\n"
        "## 2. Individual evaluations\n"
        f"{evaluations_text}\n\n"
        "## 3. Your work\n"
        "A. overallLevel: from all individual performance levels, choose the single "
        f"level that best represents the candidate. One of: {levels}.\n"
        "B. summary: one concise, insightful paragraph covering the main highlights, "
        "key gaps and overall impression.\n"
        "C. strengths: the 2-3 most prominent strengths shared across answers, each "
        "with competency and description. improvements: the 2-3 most important gaps, "
        "each with competency, suggestion and example.\n\n"
        "## 4. Output format (JSON)\n"
        '{"overallLevel": "<level>", "summary": "<paragraph>", '
        '"strengths": [{"competency": "...", "description": "..."}], '
        '"improvements": [{"competency": "...", "suggestion": "...", "example": "..."}]}'
    )


def _parse_summary_response(payload: dict[str, Any]) -> OverallSummary:
    parsed = extract_json_object(payload, "summary")
    level = PerformanceLevel.parse(parsed.get("overallLevel"))
    if level is PerformanceLevel.UNASSESSABLE:
        raise ValueError("overallLevel must be a ranked level")
    summary = parsed.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ValueError("Summary response missing summary")
    strengths = parse_strengths(parsed.get("strengths"))
    improvements = parse_improvements(parsed.get("improvements"))
    if len(strengths) < MIN_SUMMARY_ITEMS or len(improvements) < MIN_SUMMARY_ITEMS:
        raise ValueError(
            f"Summary response needs at least {MIN_SUMMARY_ITEMS} strengths and improvements"
        )
    return OverallSummary(
        overall_level=level,
        summary=summary.strip(),
        strengths=strengths[:MAX_SUMMARY_ITEMS],
        improvements=improvements[:MAX_SUMMARY_ITEMS],
        source="model",
    )


def score_levels(
    levels: Iterable[PerformanceLevel],
) -> tuple[PerformanceLevel, float | None]:
    ordinals = [level.ordinal for level in levels if level.ordinal is not None]
    if not ordinals:
        return PerformanceLevel.ASSISTANT, None
    average = sum(ordinals) / len(ordinals)
    return PerformanceLevel.from_average(average), average


def generate_fallback_summary(
    evaluations: Sequence[IndividualEvaluation], stage_info: StageInfo
) -> OverallSummary:
    valid = [
        evaluation
        for evaluation in evaluations
        if evaluation.preliminary_analysis.is_valid
        and evaluation.performance_level is not PerformanceLevel.UNASSESSABLE
    ]
    overall_level, average = score_levels(item.performance_level for item in valid)
    summary = (
        f"Across the {stage_info.question_count} questions of {stage_info.stage_title}, "
        f"the candidate performed at the {overall_level.value} level overall. "
        "The answers show some AI product thinking and professional ability, with "
        "room to grow; keep building hands-on experience and depth of reasoning."
    )
    logger.info(
        "Using fallback summary level=%s average=%s valid_count=%s",
        overall_level.value,
        average,
        len(valid),
    )
    return OverallSummary(overall_level=overall_level, summary=summary, source="fallback")


async def generate_overall_summary(
    evaluations: Sequence[IndividualEvaluation],
    stage_info: StageInfo,
    *,
    evaluation_id: str | None = None,
) -> OverallSummary:
    try:
        settings = load_settings()
    except SettingsError as exc:
        logger.warning("Summary settings invalid; using fallback summary error=%s", exc)
        return _fallback(evaluations, stage_info, evaluation_id, "misconfigured")
    if not settings.summary_api_key:
        logger.warning("SUMMARY_API_KEY is not set; using fallback summary")
        return _fallback(evaluations, stage_info, evaluation_id, "missing_credential")
    if not evaluations:
        return _fallback(evaluations, stage_info, evaluation_id, "no_evaluations")

    prompt = build_overall_summary_prompt(
        evaluations, stage_info, field_limit=settings.summary_prompt_field_limit
    )
    payload = {
        "model": settings.summary_model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        "temperature": settings.summary_temperature,
        "max_tokens": settings.summary_max_tokens,
        "response_format": {"type": "json_object"},
    }
    client = SummaryClient(
        base_url=settings.summary_api_base,
        api_key=settings.summary_api_key,
        timeout=settings.summary_timeout_seconds,
        retries=1,
    )
    try:
        with start_span("summary.llm_request", {"evaluationId": evaluation_id}):
            response = await client.summarize(payload)
        with start_span("summary.parse", {"evaluationId": evaluation_id}):
            summary = _parse_summary_response(response)
    except (LLMError, httpx.HTTPError) as exc:
        logger.warning(
            "Summary request failed evaluation_id=%s status=%s error=%s",
            evaluation_id,
            getattr(exc, "status_code", None),
            exc,
        )
        return _fallback(evaluations, stage_info, evaluation_id, "transport_error")
    except ValueError as exc:
        logger.warning("Summary response invalid evaluation_id=%s error=%s", evaluation_id, exc)
        return _fallback(evaluations, stage_info, evaluation_id, "invalid_response")
    finally:
        await client.close()
    logger.info("Overall summary generated evaluation_id=%s", evaluation_id)
    return summary


def _fallback(
    evaluations: Sequence[IndividualEvaluation],
    stage_info: StageInfo,
    evaluation_id: str | None,
    reason: str,
) -> OverallSummary:
    emit_event(
        "summary.fallback",
        evaluation_id=evaluation_id,
        attributes={"reason": reason},
    )
    return generate_fallback_summary(evaluations, stage_info)
