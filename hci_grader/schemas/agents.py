"""评分 Agent 的 API 模型与 LLM 输出契约。"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import Field, field_validator

from hci_grader.models.grading_agent import DEFAULT_AGENT_MODEL
from hci_grader.schemas.base import CamelModel
from hci_grader.schemas.submissions import AnswerRead


class GradingAgentCreate(CamelModel):
    question_id: int
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(min_length=1, max_length=20)
    model: str = DEFAULT_AGENT_MODEL


class GradingAgentUpdate(CamelModel):
    agent_id: int
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, min_length=1, max_length=20)
    model: Optional[str] = Field(default=None, min_length=1)


class DefaultAgentsRequest(CamelModel):
    question_id: int


class GradingAgentRead(CamelModel):
    id: int
    question_id: int
    name: str
    color: str
    model: str
    created_at: datetime
    updated_at: datetime


class AgentSuggestRequest(CamelModel):
    """请求某个 Agent 对一份答案给出建议。

    传 ``answer_id`` 时从数据库加载答案与上下文，并把建议合并回答案；
    否则需提供 ``answer_text``，仅返回建议。
    """

    agent_id: int
    answer_id: Optional[int] = None
    answer_text: Optional[str] = None
    other_answers: list[str] = Field(default_factory=list)
    include_other_answers: bool = True
    include_prior_suggestions: bool = True
    include_full_submission: bool = True
    apply: bool = True


# === LLM 输出契约 ===

class CriterionSuggestion(CamelModel):
    rubric_id: int
    suggested_level_index: int
    justification: str = ""
    improvement_suggestion: str = ""

    @field_validator("justification", "improvement_suggestion", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class SuggestionResponse(CamelModel):
    suggestions: list[CriterionSuggestion]


class AgentSuggestResponse(CamelModel):
    agent_id: int
    agent_name: str
    model: str
    suggestions: list[CriterionSuggestion]
    answer: Optional[AnswerRead] = None
