"""提交与答案的请求/响应模型。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from hci_grader.models.enums import ProcessingStatus
from hci_grader.schemas.base import CamelModel


class AgentSuggestion(CamelModel):
    """某个评分 Agent 对一个维度给出的建议。"""

    agent_id: int
    suggested_level_index: int
    justification: str = ""
    improvement_suggestion: str = ""


class CriteriaEvaluation(CamelModel):
    """答案在某个评分维度上的评价。

    ``selected_level_index`` 为空表示该维度尚未评分，只有 Agent 建议。
    """

    rubric_id: int
    selected_level_index: Optional[int] = Field(default=None, ge=0)
    feedback: str = ""
    agent_suggestions: list[AgentSuggestion] = Field(default_factory=list)


class AnswerCreate(CamelModel):
    submission_id: int
    question_id: int
    answer_text: str = ""
    criteria_evaluations: list[CriteriaEvaluation] = Field(default_factory=list)


class AnswerUpdate(CamelModel):
    answer_text: Optional[str] = None
    criteria_evaluations: Optional[list[CriteriaEvaluation]] = None


class AnswerUpdateWithId(AnswerUpdate):
    """``PUT /answers`` 的请求体，目标答案 ID 放在 body 中。"""

    id: int


class AnswerRead(CamelModel):
    id: int
    submission_id: int
    question_id: int
    answer_text: str
    criteria_evaluations: list[CriteriaEvaluation]
    points_percentage: float
    graded: bool = False
    created_at: datetime
    updated_at: datetime


class SubmissionAnswerInput(CamelModel):
    question_id: int
    answer_text: str = ""


class SubmissionCreate(CamelModel):
    assignment_id: int
    student_name: str = Field(min_length=1)
    student_email: str = Field(min_length=1)
    submitted_at: Optional[datetime] = None
    answers: list[SubmissionAnswerInput] = Field(default_factory=list)


class SubmissionUpdate(CamelModel):
    student_name: Optional[str] = Field(default=None, min_length=1)
    student_email: Optional[str] = Field(default=None, min_length=1)
    submitted_at: Optional[datetime] = None
    processing_status: Optional[ProcessingStatus] = None


class SubmissionRead(CamelModel):
    id: int
    assignment_id: int
    student_name: str
    student_email: str
    submitted_at: datetime
    processing_status: ProcessingStatus
    batch_upload_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class SubmissionDetail(SubmissionRead):
    extracted_text: Optional[str] = None
    answers: list[AnswerRead] = Field(default_factory=list)
