from __future__ import annotations

import logging
from dataclasses import dataclass

from stage_eval.config import DEFAULT_MAX_CONCURRENCY, SettingsError, load_settings
from stage_eval.models.evaluation import (
    AggregatedReport,
    EvaluationRequest,
    IndividualEvaluation,
    StageInfo,
)
from stage_eval.services.aggregator import build_report, new_evaluation_id
from stage_eval.services.answer_evaluator import Evaluator, LLMAnswerEvaluator
from stage_eval.services.dispatcher import evaluate_questions
from stage_eval.services.summary_service import generate_overall_summary
from stage_eval.telemetry.otel import start_span
from stage_eval.telemetry.tracing import emit_event

logger = logging.getLogger(__name__)


class EvaluationProcessingError(RuntimeError):
    pass


class _MisconfiguredEvaluator(Evaluator):
    """Used when settings cannot be loaded; every question takes the fallback path."""

    def __init__(self, error: SettingsError) -> None:
        self._error = error

    async def evaluate_answer(self, request: EvaluationRequest) -> IndividualEvaluation:
        raise self._error


@dataclass(frozen=True)
class QuestionSetSubmission:
    stage_type: str
    stage_title: str
    question_set_index: int
    questions: tuple[str, ...]
    answers: tuple[str | None, ...]

    @property
    def stage_info(self) -> StageInfo:
        return StageInfo(
            stage_type=self.stage_type,
            stage_title=self.stage_title,
            question_set_index=self.question_set_index,
            question_count=len(self.questions),
        )


async def process_evaluation(
    submission: QuestionSetSubmission,
    *,
    evaluation_id: str | None = None,
    evaluator: Evaluator | None = None,
) -> AggregatedReport:
    """Evaluate each question, summarise the stage and assemble the report."""
    evaluation_id = evaluation_id or new_evaluation_id()
    stage_info = submission.stage_info
    logger.info(
        "Processing question set evaluation_id=%s stage=%s questions=%s answers=%s",
        evaluation_id,
        submission.stage_type,
        len(submission.questions),
        len(submission.answers),
    )
    owns_evaluator = evaluator is None
    try:
        settings = load_settings()
    except SettingsError as exc:
        # The summary stage reports the same error and falls back on its own.
        logger.warning(
            "Settings invalid evaluation_id=%s error=%s; evaluating with defaults",
            evaluation_id,
            exc,
        )
        max_concurrency = DEFAULT_MAX_CONCURRENCY
        active_evaluator = evaluator or _MisconfiguredEvaluator(exc)
    else:
        max_concurrency = settings.evaluation_max_concurrency
        active_evaluator = evaluator or LLMAnswerEvaluator(settings)
    try:
        with start_span(
            "question_set.process",
            {"evaluationId": evaluation_id, "questionCount": stage_info.question_count},
        ):
            individual_evaluations = await evaluate_questions(
                submission.questions,
                submission.answers,
                stage_type=submission.stage_type,
                evaluator=active_evaluator,
                max_concurrency=max_concurrency,
                evaluation_id=evaluation_id,
            )
            overall_summary = await generate_overall_summary(
                individual_evaluations, stage_info, evaluation_id=evaluation_id
            )
            report = build_report(
                stage_info,
                individual_evaluations,
                overall_summary,
                evaluation_id=evaluation_id,
            )
    except Exception as exc:
        logger.exception("Question set processing failed evaluation_id=%s", evaluation_id)
        raise EvaluationProcessingError(f"Evaluation processing failed: {exc}") from exc
    finally:
        if owns_evaluator:
            await active_evaluator.close()

    emit_event(
        "question_set.completed",
        evaluation_id=evaluation_id,
        attributes={
            "overallLevel": overall_summary.overall_level.value,
            "summarySource": overall_summary.source,
            "questionCount": stage_info.question_count,
        },
    )
    return report
