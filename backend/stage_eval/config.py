from __future__ import annotations

from dataclasses import dataclass
import os
from urllib.parse import urlparse

DEFAULT_API_BASE = "https://api.siliconflow.cn/v1"
DEFAULT_SUMMARY_MODEL = "deepseek-ai/DeepSeek-V2"
DEFAULT_MAX_CONCURRENCY = 8


class SettingsError(ValueError):
    pass


@dataclass(frozen=True)
class Settings:
    summary_api_base: str
    summary_api_key: str | None
    summary_model: str
    summary_temperature: float
    summary_max_tokens: int
    summary_prompt_field_limit: int
    summary_timeout_seconds: float
    evaluator_api_base: str
    evaluator_api_key: str | None
    evaluator_model: str
    evaluator_timeout_seconds: float
    evaluation_max_concurrency: int
    evaluation_job_limit: int
    log_level: str


def _optional_env(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _require_url(name: str, value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise SettingsError(f"Invalid URL for {name}: {value}")
    return value


def _float_env(name: str, default: float) -> float:
    raw = _optional_env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise SettingsError(f"Invalid number for {name}: {raw}") from exc


def _int_env(name: str, default: int, *, minimum: int = 1) -> int:
    raw = _optional_env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise SettingsError(f"Invalid integer for {name}: {raw}") from exc
    if value < minimum:
        raise SettingsError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_settings() -> Settings:
    summary_api_base = _require_url(
        "SUMMARY_API_BASE", _optional_env("SUMMARY_API_BASE") or DEFAULT_API_BASE
    )
    # SILICONFLOW_API_KEY is the name older deployments were configured with.
    summary_api_key = _optional_env("SUMMARY_API_KEY") or _optional_env(
        "SILICONFLOW_API_KEY"
    )
    summary_model = _optional_env("SUMMARY_MODEL") or DEFAULT_SUMMARY_MODEL
    evaluator_api_base = _require_url(
        "EVALUATOR_API_BASE", _optional_env("EVALUATOR_API_BASE") or summary_api_base
    )

    return Settings(
        summary_api_base=summary_api_base,
        summary_api_key=summary_api_key,
        summary_model=summary_model,
        summary_temperature=_float_env("SUMMARY_TEMPERATURE", 0.6),
        summary_max_tokens=_int_env("SUMMARY_MAX_TOKENS", 2000),
        summary_prompt_field_limit=_int_env("SUMMARY_PROMPT_FIELD_LIMIT", 500),
        summary_timeout_seconds=_float_env("SUMMARY_TIMEOUT_SECONDS", 30.0),
        evaluator_api_base=evaluator_api_base,
        evaluator_api_key=_optional_env("EVALUATOR_API_KEY") or summary_api_key,
        evaluator_model=_optional_env("EVALUATOR_MODEL") or summary_model,
        evaluator_timeout_seconds=_float_env("EVALUATOR_TIMEOUT_SECONDS", 20.0),
        evaluation_max_concurrency=_int_env(
            "EVALUATION_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY
        ),
        evaluation_job_limit=_int_env("EVALUATION_JOB_LIMIT", 500),
        log_level=(_optional_env("LOG_LEVEL") or "INFO").upper(),
    )
