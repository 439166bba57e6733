from __future__ import annotations

from contextlib import contextmanager
import logging
import time
from typing import Any

logger = logging.getLogger("stage_eval.telemetry")


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    span: dict[str, Any] = {"name": name, "attributes": dict(attributes or {})}
    started = time.perf_counter()
    try:
        yield span
    except Exception:
        span["status"] = "error"
        raise
    finally:
        span["durationMs"] = round((time.perf_counter() - started) * 1000, 3)
        logger.debug(
            "span %s finished in %sms status=%s attributes=%s",
            name,
            span["durationMs"],
            span.get("status", "ok"),
            span["attributes"],
        )
