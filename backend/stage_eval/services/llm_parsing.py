from __future__ import annotations

import json
from typing import Any

from stage_eval.models.evaluation import Improvement, Strength


def extract_json_object(payload: dict[str, Any], context: str) -> dict[str, Any]:
    """Pull the JSON object out of a chat-completion reply.

    Tool-call arguments win over message content; surrounding prose or code
    fences around the object are ignored.
    """
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if not isinstance(choices, list) or not choices:
        raise ValueError(f"Missing choices in {context} response")
    choice = choices[0]
    message = choice.get("message") if isinstance(choice, dict) else None
    if not isinstance(message, dict):
        raise ValueError(f"Missing message in {context} response")
    tool_calls = message.get("tool_calls") or []
    if tool_calls:
        call = tool_calls[0] if isinstance(tool_calls, list) else None
        function = call.get("function") if isinstance(call, dict) else None
        if not isinstance(function, dict):
            raise ValueError(f"Malformed tool call in {context} response")
        raw = function.get("arguments") or ""
    else:
        raw = message.get("content") or ""
    if not isinstance(raw, str):
        raise ValueError(f"Non-text content in {context} response")
    if not raw:
        raise ValueError(f"Empty content in {context} response")
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end == -1:
        raise ValueError(f"{context.capitalize()} response missing JSON payload")
    try:
        parsed = json.loads(raw[start : end + 1])
    except json.JSONDecodeError as exc:
        raise ValueError(f"{context.capitalize()} response is not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise ValueError(f"{context.capitalize()} response must be a JSON object")
    return parsed


def parse_strengths(raw: Any) -> tuple[Strength, ...]:
    if not isinstance(raw, list):
        raise ValueError("strengths must be a list")
    items: list[Strength] = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValueError("Strength entry invalid")
        competency = entry.get("competency")
        description = entry.get("description")
        if not isinstance(competency, str) or not isinstance(description, str):
            raise ValueError("Strength entry invalid")
        items.append(Strength(competency=competency, description=description))
    return tuple(items)


def parse_improvements(raw: Any) -> tuple[Improvement, ...]:
    if not isinstance(raw, list):
        raise ValueError("improvements must be a list")
    items: list[Improvement] = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValueError("Improvement entry invalid")
        competency = entry.get("competency")
        suggestion = entry.get("suggestion")
        example = entry.get("example", "")
        if not isinstance(competency, str) or not isinstance(suggestion, str):
            raise ValueError("Improvement entry invalid")
        items.append(
            Improvement(
                competency=competency,
                suggestion=suggestion,
                example=example if isinstance(example, str) else "",
            )
        )
    return tuple(items)
