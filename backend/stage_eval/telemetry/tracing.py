from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger("stage_eval.telemetry")


def _telemetry_record(
    kind: str,
    name: str,
    evaluation_id: str | None,
    question_index: int | None,
    attributes: dict[str, Any] | None,
) -> dict[str, Any]:
    """One JSON log line per event or metric.

    Context keys are left out when unknown so records from the summary stage,
    which has no question index, stay compact.
    """
    record: dict[str, Any] = {"type": kind, "name": name, "attributes": dict(attributes or {})}
    if evaluation_id is not None:
        record["evaluationId"] = evaluation_id
    if question_index is not None:
        record["questionIndex"] = question_index
    return record


def _log(record: dict[str, Any]) -> dict[str, Any]:
    logger.info(json.dumps(record, sort_keys=True, ensure_ascii=False, default=str))
    return record


def emit_event(
    name: str,
    *,
    evaluation_id: str | None = None,
    question_index: int | None = None,
    attributes: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return _log(_telemetry_record("event", name, evaluation_id, question_index, attributes))


def emit_metric(
    name: str,
    value: float,
    *,
    evaluation_id: str | None = None,
    question_index: int | None = None,
    attributes: dict[str, Any] | None = None,
) -> dict[str, Any]:
    record = _telemetry_record("metric", name, evaluation_id, question_index, attributes)
    record["value"] = value
    return _log(record)
