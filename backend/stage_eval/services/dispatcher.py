from __future__ import annotations

import asyncio
import logging
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from stage_eval.models.evaluation import (
    DEFAULT_DIFFICULTY,
    DEFAULT_KEY_POINTS,
    UNANSWERED_SENTINEL,
    EvaluationRequest,
    IndividualEvaluation,
)
from stage_eval.services.answer_evaluator import Evaluator
from stage_eval.services.fallback import (
    generate_fallback_evaluation,
    last_resort_evaluation,
)
from stage_eval.telemetry.otel import start_span
from stage_eval.telemetry.tracing import emit_metric

logger = logging.getLogger(__name__)


class TaskOutcome(str, Enum):
    ATTEMPTING = "attempting"
    EVALUATED = "evaluated"
    RECOVERED = "recovered"
    LAST_RESORT = "last_resort"


@dataclass(frozen=True)
class QuestionResult:
    index: int
    outcome: TaskOutcome
    evaluation: IndividualEvaluation


def build_request(
    question: str, answer: str | None, *, stage_type: str
) -> EvaluationRequest:
    user_answer = answer if answer and answer.strip() else UNANSWERED_SENTINEL
    return EvaluationRequest(
        question=question,
        category=stage_type,
        user_answer=user_answer,
        difficulty=DEFAULT_DIFFICULTY,
        key_points=DEFAULT_KEY_POINTS,
        stage_type=stage_type,
    )


def build_requests(
    questions: Sequence[str],
    answers: Sequence[str | None],
    *,
    stage_type: str,
) -> list[EvaluationRequest]:
    return [
        build_request(
            question,
            answers[index] if index < len(answers) else None,
            stage_type=stage_type,
        )
        for index, question in enumerate(questions)
    ]


async def _evaluate_one(
    index: int,
    request: EvaluationRequest,
    evaluator: Evaluator,
    semaphore: asyncio.Semaphore | None,
    evaluation_id: str | None,
) -> QuestionResult:
    outcome = TaskOutcome.ATTEMPTING
    with start_span(
        "question.evaluate",
        {"evaluationId": evaluation_id, "questionIndex": index},
    ) as span:
        try:
            async with semaphore if semaphore is not None else nullcontext():
                evaluation = await evaluator.evaluate_answer(request)
            outcome = TaskOutcome.EVALUATED
        except Exception as exc:
            logger.warning(
                "Question evaluation failed evaluation_id=%s index=%s error=%r",
                evaluation_id,
                index,
                exc,
            )
            try:
                evaluation = generate_fallback_evaluation(request, exc)
                outcome = TaskOutcome.RECOVERED
            except Exception as fallback_exc:
                logger.error(
                    "Fallback evaluation failed evaluation_id=%s index=%s error=%r",
                    evaluation_id,
                    index,
                    fallback_exc,
                )
                evaluation = last_resort_evaluation(fallback_exc)
                outcome = TaskOutcome.LAST_RESORT
        span["attributes"]["outcome"] = outcome.value
    return QuestionResult(index=index, outcome=outcome, evaluation=evaluation)


async def evaluate_questions(
    questions: Sequence[str],
    answers: Sequence[str | None],
    *,
    stage_type: str,
    evaluator: Evaluator,
    max_concurrency: int | None = None,
    evaluation_id: str | None = None,
) -> list[IndividualEvaluation]:
    """Evaluate every question concurrently and return results in input order.

    Never raises for an individual question: failures are replaced by a
    fallback evaluation, so the result always has ``len(questions)`` entries.
    """
    requests = build_requests(questions, answers, stage_type=stage_type)
    if not requests:
        return []
    semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None
    settled = await asyncio.gather(
        *(
            _evaluate_one(index, request, evaluator, semaphore, evaluation_id)
            for index, request in enumerate(requests)
        ),
        return_exceptions=True,
    )

    evaluations: list[IndividualEvaluation] = []
    fallback_count = 0
    for index, result in enumerate(settled):
        if isinstance(result, BaseException):
            # Only reachable if the task machinery itself failed, e.g. cancellation.
            logger.error(
                "Question task did not settle evaluation_id=%s index=%s error=%r",
                evaluation_id,
                index,
                result,
            )
            evaluations.append(last_resort_evaluation(result))
            fallback_count += 1
            continue
        if result.outcome is not TaskOutcome.EVALUATED:
            fallback_count += 1
        evaluations.append(result.evaluation)

    emit_metric(
        "question_set.fallback_count",
        fallback_count,
        evaluation_id=evaluation_id,
        attributes={"questionCount": len(requests)},
    )
    return evaluations
