from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from stage_eval.models.question_set import QuestionSetEvaluationCreate
from stage_eval.repositories.evaluation_job_repository import (
    EvaluationJobRecord,
    InMemoryEvaluationJobRepository,
    job_repository,
)
from stage_eval.services.aggregator import new_evaluation_id
from stage_eval.services.question_set_service import (
    QuestionSetSubmission,
    process_evaluation,
)
from stage_eval.tasks.evaluation_runner import enqueue

logger = logging.getLogger(__name__)

router = APIRouter()

PROCESSING_MESSAGE = "Evaluation started; the report will be generated asynchronously"


def _job_repository() -> InMemoryEvaluationJobRepository:
    return job_repository


def _submission(body: QuestionSetEvaluationCreate) -> QuestionSetSubmission:
    return QuestionSetSubmission(
        stage_type=body.stageType,
        stage_title=body.stageTitle,
        question_set_index=body.questionSetIndex,
        questions=tuple(body.questions),
        answers=tuple(body.answers),
    )


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def _job_response(record: EvaluationJobRecord) -> dict[str, Any]:
    return {
        "evaluationId": record.id,
        "status": record.status,
        "stageType": record.stage_type,
        "questionCount": record.question_count,
        "report": record.report,
        "lastError": record.last_error,
        "queuedAt": record.queued_at,
        "startedAt": record.started_at,
        "completedAt": record.completed_at,
    }


@router.post("/evaluate-question-set")
async def evaluate_question_set(
    body: QuestionSetEvaluationCreate,
    repository: InMemoryEvaluationJobRepository = Depends(_job_repository),
):
    logger.info(
        "Question set evaluation requested stage=%s title=%s index=%s questions=%s answers=%s async=%s",
        body.stageType,
        body.stageTitle,
        body.questionSetIndex,
        len(body.questions),
        len(body.answers),
        body.async_mode,
    )
    submission = _submission(body)
    try:
        if body.async_mode:
            evaluation_id = new_evaluation_id()
            await repository.create_job(
                evaluation_id,
                stage_type=submission.stage_type,
                question_count=len(submission.questions),
            )
            enqueue(evaluation_id, submission, repository=repository)
            return {
                "evaluationId": evaluation_id,
                "message": PROCESSING_MESSAGE,
                "status": "processing",
            }
        report = await process_evaluation(submission)
    except Exception as exc:
        logger.error("Question set evaluation failed: %s", exc)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Question set evaluation failed",
            str(exc) or "Unknown error",
        )
    return report.to_payload()


@router.get("/evaluations/{evaluation_id}")
async def get_evaluation(
    evaluation_id: str,
    repository: InMemoryEvaluationJobRepository = Depends(_job_repository),
):
    record = await repository.get(evaluation_id)
    if record is None:
        return _error_response(
            status.HTTP_404_NOT_FOUND,
            "Evaluation not found",
            f"No evaluation with id {evaluation_id}",
        )
    return _job_response(record)
