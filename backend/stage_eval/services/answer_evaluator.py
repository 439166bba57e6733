from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from stage_eval.clients.llm import EvaluatorClient, LLMError
from stage_eval.config import Settings
from stage_eval.models.evaluation import (
    EvaluationRequest,
    Improvement,
    IndividualEvaluation,
    PerformanceLevel,
    PreliminaryAnalysis,
)
from stage_eval.services.llm_parsing import (
    extract_json_object,
    parse_improvements,
    parse_strengths,
)
from stage_eval.telemetry.otel import start_span

SYSTEM_PROMPT = (
    "You are a senior interviewer for AI product manager roles. Evaluate one "
    "answer and return only a JSON object with keys performanceLevel, summary, "
    "strengths, improvements and preliminaryAnalysis. Do not include extra text."
)


class Evaluator(ABC):
    @abstractmethod
    async def evaluate_answer(self, request: EvaluationRequest) -> IndividualEvaluation:
        """
        Evaluate one question/answer pair.

        May raise any exception (transport failure, timeout, malformed model
        output); callers are expected to substitute a fallback evaluation.
        """
        raise NotImplementedError

    async def close(self) -> None:
        return None


def _format_key_points(key_points: tuple[str, ...]) -> str:
    if not key_points:
        return "Not provided"
    return "\n".join(f"- {item}" for item in key_points)


def _level_choices() -> str:
    return ", ".join(f'"{level.value}"' for level in PerformanceLevel.ranked())


def build_evaluation_messages(request: EvaluationRequest) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"Stage: {request.stage_type or request.category}\n"
                f"Category: {request.category}\n"
                f"Difficulty: {request.difficulty}\n"
                f"Key points:\n{_format_key_points(request.key_points)}\n"
                f"Question: {request.question}\n"
                f"Answer: {request.user_answer}\n\n"
                "performanceLevel must be one of "
                f"{_level_choices()}, or \"{PerformanceLevel.UNASSESSABLE.value}\" "
                "when the answer is off-topic or empty.\n"
                "strengths: list of {competency, description}.\n"
                "improvements: list of {competency, suggestion, example}.\n"
                "preliminaryAnalysis: {isValid, reason}."
            ),
        },
    ]


def _parse_evaluation_response(payload: dict[str, Any]) -> IndividualEvaluation:
    parsed = extract_json_object(payload, "evaluation")
    level = PerformanceLevel.parse(parsed.get("performanceLevel"))
    summary = parsed.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ValueError("Evaluation response missing summary")
    analysis_raw = parsed.get("preliminaryAnalysis") or {}
    if not isinstance(analysis_raw, dict):
        raise ValueError("preliminaryAnalysis must be an object")
    is_valid = analysis_raw.get("isValid", level is not PerformanceLevel.UNASSESSABLE)
    reason = analysis_raw.get("reason")
    return IndividualEvaluation(
        performance_level=level,
        summary=summary.strip(),
        strengths=parse_strengths(parsed.get("strengths", [])),
        improvements=parse_improvements(parsed.get("improvements", [])),
        preliminary_analysis=PreliminaryAnalysis(
            is_valid=bool(is_valid),
            reason=reason if isinstance(reason, str) else None,
            should_continue=bool(analysis_raw.get("shouldContinueEvaluation", True)),
        ),
    )


def unanswered_evaluation(request: EvaluationRequest) -> IndividualEvaluation:
    return IndividualEvaluation(
        performance_level=PerformanceLevel.UNASSESSABLE,
        summary="No answer was provided for this question.",
        strengths=(),
        improvements=(
            Improvement(
                competency="Completeness",
                suggestion="Answer every question, even briefly, so it can be assessed.",
                example="Outline the user problem and one solution in two or three sentences.",
            ),
        ),
        preliminary_analysis=PreliminaryAnalysis(
            is_valid=False, reason="Answer missing", should_continue=False
        ),
    )


class LLMAnswerEvaluator(Evaluator):
    def __init__(self, settings: Settings, client: EvaluatorClient | None = None) -> None:
        self._settings = settings
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> EvaluatorClient:
        if self._client is None:
            if not self._settings.evaluator_api_key:
                raise LLMError("EVALUATOR_API_KEY is not configured")
            self._client = EvaluatorClient(
                base_url=self._settings.evaluator_api_base,
                api_key=self._settings.evaluator_api_key,
                timeout=self._settings.evaluator_timeout_seconds,
                retries=1,
            )
        return self._client

    async def evaluate_answer(self, request: EvaluationRequest) -> IndividualEvaluation:
        if request.is_unanswered:
            return unanswered_evaluation(request)
        client = self._get_client()
        payload = {
            "model": self._settings.evaluator_model,
            "messages": build_evaluation_messages(request),
            "temperature": 0.3,
            "response_format": {"type": "json_object"},
        }
        with start_span("evaluation.llm_request", {"category": request.category}):
            response = await client.evaluate(payload)
        with start_span("evaluation.parse", {"category": request.category}):
            return _parse_evaluation_response(response)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.close()
            self._client = None
