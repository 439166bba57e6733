from __future__ import annotations

from datetime import datetime, timezone
import time
from typing import Sequence
from uuid import uuid4

from stage_eval.models.evaluation import (
    AggregatedReport,
    IndividualEvaluation,
    OverallSummary,
    StageInfo,
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_evaluation_id() -> str:
    return f"eval_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def build_report(
    stage_info: StageInfo,
    individual_evaluations: Sequence[IndividualEvaluation],
    overall_summary: OverallSummary,
    *,
    evaluation_id: str | None = None,
    timestamp: str | None = None,
) -> AggregatedReport:
    return AggregatedReport(
        evaluation_id=evaluation_id or new_evaluation_id(),
        stage_info=stage_info,
        individual_evaluations=tuple(individual_evaluations),
        overall_summary=overall_summary,
        timestamp=timestamp or _utc_now(),
    )
