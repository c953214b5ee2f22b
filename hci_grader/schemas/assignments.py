"""作业、题目与评分细则的请求/响应模型。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from hci_grader.schemas.base import CamelModel


class AssignmentCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str = ""
    total_points: float = Field(default=100, gt=0)


class AssignmentUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    total_points: Optional[float] = Field(default=None, gt=0)


class AssignmentRead(CamelModel):
    id: int
    title: str
    description: str
    total_points: float
    created_at: datetime
    updated_at: datetime


class QuestionCreate(CamelModel):
    assignment_id: int
    question_text: str = Field(min_length=1)
    question_number: int = Field(ge=1)
    points_percentage: float = Field(default=100, ge=0, le=100)


class QuestionUpdate(CamelModel):
    question_text: Optional[str] = Field(default=None, min_length=1)
    question_number: Optional[int] = Field(default=None, ge=1)
    points_percentage: Optional[float] = Field(default=None, ge=0, le=100)


class QuestionRead(CamelModel):
    id: int
    assignment_id: int
    question_text: str
    question_number: int
    points_percentage: float
    created_at: datetime
    updated_at: datetime


class Level(CamelModel):
    """评分等级；各等级的百分比相互独立，不要求递增或累加。"""

    name: str = Field(min_length=1)
    description: str = ""
    percentage: float = Field(ge=0, le=100)


class RubricCreate(CamelModel):
    question_id: int
    criteria_name: str = Field(min_length=1)
    description: str = ""
    levels: list[Level] = Field(min_length=1)


class RubricUpdate(CamelModel):
    criteria_name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    levels: Optional[list[Level]] = Field(default=None, min_length=1)


class RubricRead(CamelModel):
    id: int
    question_id: int
    criteria_name: str
    description: str
    levels: list[Level]
    created_at: datetime
    updated_at: datetime
