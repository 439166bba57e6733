from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parents[1]
BACKEND_ROOT = PROJECT_ROOT / "backend"
sys.path.append(str(BACKEND_ROOT))

from pydantic import ValidationError

from stage_eval.config import SettingsError, load_settings
from stage_eval.models.question_set import QuestionSetEvaluationCreate
from stage_eval.services.question_set_service import (
    QuestionSetSubmission,
    process_evaluation,
)


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"File not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Expected an object in {path}")
    return data


def _submission(data: dict[str, Any]) -> QuestionSetSubmission:
    try:
        body = QuestionSetEvaluationCreate.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid evaluation request: {exc}") from exc
    return QuestionSetSubmission(
        stage_type=body.stageType,
        stage_title=body.stageTitle,
        question_set_index=body.questionSetIndex,
        questions=tuple(body.questions),
        answers=tuple(body.answers),
    )


async def _run(input_path: Path, output_path: Path | None) -> int:
    submission = _submission(_read_json(input_path))
    try:
        load_settings()
    except SettingsError as exc:
        raise ValueError(str(exc)) from exc

    report = await process_evaluation(submission)
    rendered = json.dumps(report.to_payload(), ensure_ascii=False, indent=2)
    if output_path:
        output_path.write_text(rendered + "\n", encoding="utf-8")
        print(
            f"Report {report.evaluation_id} written to {output_path} "
            f"({report.overall_summary.overall_level.value})"
        )
    else:
        print(rendered)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Evaluate a question set from a JSON request body and print the report"
    )
    parser.add_argument("input", type=Path)
    parser.add_argument("--output", type=Path, default=None)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    try:
        return asyncio.run(_run(args.input, args.output))
    except Exception as exc:
        print(f"Evaluation failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
