from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from stage_eval.repositories.evaluation_job_repository import (
    EvaluationJobRecord,
    InMemoryEvaluationJobRepository,
    job_repository,
)
from stage_eval.services.question_set_service import (
    QuestionSetSubmission,
    process_evaluation,
)
from stage_eval.telemetry.otel import start_span
from stage_eval.telemetry.tracing import emit_metric

logger = logging.getLogger(__name__)

_IN_FLIGHT: set[asyncio.Task[None]] = set()


def enqueue(
    evaluation_id: str,
    submission: QuestionSetSubmission,
    *,
    repository: InMemoryEvaluationJobRepository | None = None,
) -> asyncio.Task[None] | None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.warning(
            "No running event loop; evaluation enqueue skipped evaluation_id=%s",
            evaluation_id,
        )
        return None
    task = loop.create_task(
        _run_evaluation(evaluation_id, submission, repository or job_repository)
    )
    _IN_FLIGHT.add(task)
    task.add_done_callback(_IN_FLIGHT.discard)
    return task


async def drain(timeout: float | None = None) -> None:
    """Wait for in-flight background evaluations, e.g. on shutdown."""
    if not _IN_FLIGHT:
        return
    await asyncio.wait(set(_IN_FLIGHT), timeout=timeout)


async def _run_evaluation(
    evaluation_id: str,
    submission: QuestionSetSubmission,
    repository: InMemoryEvaluationJobRepository,
) -> None:
    with start_span("evaluation.run", {"evaluationId": evaluation_id, "status": "running"}):
        await repository.mark_running(evaluation_id)
        try:
            report = await process_evaluation(submission, evaluation_id=evaluation_id)
        except Exception as exc:
            logger.warning(
                "Background evaluation failed evaluation_id=%s error=%s",
                evaluation_id,
                exc,
            )
            record = await repository.mark_failed(evaluation_id, str(exc))
        else:
            logger.info("Background evaluation completed evaluation_id=%s", evaluation_id)
            record = await repository.mark_completed(evaluation_id, report.to_payload())
    if record is not None:
        _emit_queue_latency_metric(record)


def _emit_queue_latency_metric(record: EvaluationJobRecord) -> None:
    if not record.queued_at or not record.completed_at:
        return
    try:
        queued = datetime.fromisoformat(record.queued_at)
        completed = datetime.fromisoformat(record.completed_at)
    except ValueError:
        return
    latency = (completed - queued).total_seconds()
    emit_metric(
        "evaluation.queue_latency",
        latency,
        evaluation_id=record.id,
        attributes={"status": record.status},
    )
