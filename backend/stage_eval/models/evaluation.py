from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

UNANSWERED_SENTINEL = "未回答"
DEFAULT_DIFFICULTY = "medium"
DEFAULT_KEY_POINTS: tuple[str, ...] = (
    "Understands the core of the question",
    "Shows AI product thinking",
    "Proposes concrete, feasible solutions",
    "Balances technology and business concerns",
)


class PerformanceLevel(str, Enum):
    """Director-ladder tiers shared by individual and overall evaluations.

    Values are the labels the assessment UI renders. ``UNASSESSABLE`` marks
    answers that could not be judged and has no ordinal.
    """

    ASSISTANT = "助理级"
    SCREENWRITER = "编剧级"
    PRODUCER = "制片级"
    DIRECTOR = "导演级"
    UNASSESSABLE = "无法评估"

    @property
    def ordinal(self) -> int | None:
        return _ORDINALS.get(self)

    @classmethod
    def ranked(cls) -> tuple["PerformanceLevel", ...]:
        return (cls.ASSISTANT, cls.SCREENWRITER, cls.PRODUCER, cls.DIRECTOR)

    @classmethod
    def parse(cls, raw: Any) -> "PerformanceLevel":
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            raise ValueError(f"Invalid performance level: {raw!r}")
        text = raw.strip()
        for level in cls:
            if text == level.value or text.upper() == level.name:
                return level
        raise ValueError(f"Unknown performance level: {raw!r}")

    @classmethod
    def from_average(cls, average: float) -> "PerformanceLevel":
        # Thresholds are inclusive: an average of exactly 3.5 is DIRECTOR.
        if average >= 3.5:
            return cls.DIRECTOR
        if average >= 2.5:
            return cls.PRODUCER
        if average >= 1.5:
            return cls.SCREENWRITER
        return cls.ASSISTANT


_ORDINALS = {
    PerformanceLevel.ASSISTANT: 1,
    PerformanceLevel.SCREENWRITER: 2,
    PerformanceLevel.PRODUCER: 3,
    PerformanceLevel.DIRECTOR: 4,
}


@dataclass(frozen=True)
class EvaluationRequest:
    question: str
    category: str
    user_answer: str
    difficulty: str = DEFAULT_DIFFICULTY
    key_points: tuple[str, ...] = DEFAULT_KEY_POINTS
    stage_type: str | None = None

    @property
    def is_unanswered(self) -> bool:
        answer = self.user_answer.strip()
        return not answer or answer == UNANSWERED_SENTINEL


@dataclass(frozen=True)
class Strength:
    competency: str
    description: str

    def to_payload(self) -> dict[str, str]:
        return {"competency": self.competency, "description": self.description}


@dataclass(frozen=True)
class Improvement:
    competency: str
    suggestion: str
    example: str

    def to_payload(self) -> dict[str, str]:
        return {
            "competency": self.competency,
            "suggestion": self.suggestion,
            "example": self.example,
        }


@dataclass(frozen=True)
class PreliminaryAnalysis:
    is_valid: bool
    reason: str | None = None
    should_continue: bool = True

    def to_payload(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "reason": self.reason,
            "shouldContinueEvaluation": self.should_continue,
        }


@dataclass(frozen=True)
class IndividualEvaluation:
    performance_level: PerformanceLevel
    summary: str
    strengths: tuple[Strength, ...]
    improvements: tuple[Improvement, ...]
    preliminary_analysis: PreliminaryAnalysis
    failure_reason: str | None = None
    is_fallback: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "performanceLevel": self.performance_level.value,
            "summary": self.summary,
            "strengths": [item.to_payload() for item in self.strengths],
            "improvements": [item.to_payload() for item in self.improvements],
            "preliminaryAnalysis": self.preliminary_analysis.to_payload(),
            "isFallback": self.is_fallback,
        }
        if self.failure_reason is not None:
            payload["failureReason"] = self.failure_reason
        return payload


@dataclass(frozen=True)
class StageInfo:
    stage_type: str
    stage_title: str
    question_set_index: int
    question_count: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "stageType": self.stage_type,
            "stageTitle": self.stage_title,
            "questionSetIndex": self.question_set_index,
            "questionCount": self.question_count,
        }


@dataclass(frozen=True)
class OverallSummary:
    overall_level: PerformanceLevel
    summary: str
    strengths: tuple[Strength, ...] = ()
    improvements: tuple[Improvement, ...] = ()
    source: str = "model"

    def to_payload(self) -> dict[str, Any]:
        return {
            "overallLevel": self.overall_level.value,
            "summary": self.summary,
            "strengths": [item.to_payload() for item in self.strengths],
            "improvements": [item.to_payload() for item in self.improvements],
            "source": self.source,
        }


@dataclass(frozen=True)
class AggregatedReport:
    evaluation_id: str
    stage_info: StageInfo
    individual_evaluations: tuple[IndividualEvaluation, ...]
    overall_summary: OverallSummary
    timestamp: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "evaluationId": self.evaluation_id,
            "stageInfo": self.stage_info.to_payload(),
            "individualEvaluations": [
                item.to_payload() for item in self.individual_evaluations
            ],
            "overallSummary": self.overall_summary.to_payload(),
            "timestamp": self.timestamp,
        }
