from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
FINISHED_STATUSES = frozenset({COMPLETED, FAILED})


@dataclass(frozen=True)
class EvaluationJobRecord:
    id: str
    status: str
    stage_type: str
    question_count: int
    report: dict[str, Any] | None
    last_error: str | None
    queued_at: str
    started_at: str | None
    completed_at: str | None


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryEvaluationJobRepository:
    """Process-local job status store keyed by evaluation id.

    Holds at most ``limit`` jobs; when full, the oldest finished job is evicted.
    Jobs still pending or running are never evicted.
    """

    def __init__(self, limit: int = 500) -> None:
        self._limit = limit
        self._jobs: OrderedDict[str, EvaluationJobRecord] = OrderedDict()
        self._lock = asyncio.Lock()

    def configure(self, *, limit: int) -> None:
        self._limit = limit

    async def create_job(
        self, evaluation_id: str, *, stage_type: str, question_count: int
    ) -> EvaluationJobRecord:
        record = EvaluationJobRecord(
            id=evaluation_id,
            status=PENDING,
            stage_type=stage_type,
            question_count=question_count,
            report=None,
            last_error=None,
            queued_at=_utc_now(),
            started_at=None,
            completed_at=None,
        )
        async with self._lock:
            if evaluation_id in self._jobs:
                raise ValueError(f"Evaluation job already exists: {evaluation_id}")
            self._evict_if_full()
            self._jobs[evaluation_id] = record
        return record

    async def mark_running(self, evaluation_id: str) -> EvaluationJobRecord | None:
        return await self._update(evaluation_id, status=RUNNING, started_at=_utc_now())

    async def mark_completed(
        self, evaluation_id: str, report: dict[str, Any]
    ) -> EvaluationJobRecord | None:
        return await self._update(
            evaluation_id,
            status=COMPLETED,
            report=report,
            last_error=None,
            completed_at=_utc_now(),
        )

    async def mark_failed(self, evaluation_id: str, error: str) -> EvaluationJobRecord | None:
        return await self._update(
            evaluation_id, status=FAILED, last_error=error, completed_at=_utc_now()
        )

    async def get(self, evaluation_id: str) -> EvaluationJobRecord | None:
        async with self._lock:
            return self._jobs.get(evaluation_id)

    async def _update(self, evaluation_id: str, **changes: Any) -> EvaluationJobRecord | None:
        async with self._lock:
            current = self._jobs.get(evaluation_id)
            if current is None:
                return None
            updated = replace(current, **changes)
            self._jobs[evaluation_id] = updated
            return updated

    def _evict_if_full(self) -> None:
        if len(self._jobs) < self._limit:
            return
        for job_id, job in self._jobs.items():
            if job.status in FINISHED_STATUSES:
                del self._jobs[job_id]
                return


job_repository = InMemoryEvaluationJobRepository()
