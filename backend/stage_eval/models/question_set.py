from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class QuestionSetEvaluationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stageType: str = Field(..., min_length=1)
    stageTitle: str = ""
    questionSetIndex: int = Field(0, ge=0)
    questions: list[str]
    # May be shorter than questions; answers past the last question are ignored.
    answers: list[str | None] = Field(default_factory=list)
    async_mode: bool = Field(False, alias="async")
