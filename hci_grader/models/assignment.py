"""作业、题目与评分细则模型定义。"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from hci_grader.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Assignment(Base):
    """作业：题目与学生提交的容器。"""

    __tablename__ = "assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    # 作业总分；已有提交后不应再修改（不强制）
    total_points: Mapped[float] = mapped_column(Float, default=100, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    questions: Mapped[List["Question"]] = relationship(
        back_populates="assignment",
        cascade="all, delete-orphan",
        order_by="Question.question_number",
    )
    submissions: Mapped[List["Submission"]] = relationship(
        back_populates="assignment", cascade="all, delete-orphan"
    )
    batch_uploads: Mapped[List["BatchUpload"]] = relationship(
        back_populates="assignment", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Assignment(id={self.id}, title={self.title})>"


class Question(Base):
    """作业中的一道题。

    ``points_percentage`` 为本题占作业总分的百分比，同一作业下所有题目
    之和应为 100（不做事务级校验）。
    """

    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assignment_id: Mapped[int] = mapped_column(
        ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_number: Mapped[int] = mapped_column(Integer, nullable=False)
    points_percentage: Mapped[float] = mapped_column(Float, default=100, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    assignment: Mapped[Assignment] = relationship(back_populates="questions")
    rubrics: Mapped[List["Rubric"]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="Rubric.id",
    )
    answers: Mapped[List["Answer"]] = relationship(
        back_populates="question", cascade="all, delete-orphan"
    )
    grading_agents: Mapped[List["GradingAgent"]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="GradingAgent.created_at",
    )

    @property
    def max_points(self) -> float:
        """本题满分 = 百分比 × 作业总分。"""

        total = self.assignment.total_points if self.assignment else 100
        return (self.points_percentage / 100) * total

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, number={self.question_number})>"


class Rubric(Base):
    """评分细则：一个评价维度及其有序的表现等级。"""

    __tablename__ = "rubrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    criteria_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, default="")

    # 有序等级列表
    # 格式: [{"name": "Good", "description": "...", "percentage": 100}]
    levels_json: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    question: Mapped[Question] = relationship(back_populates="rubrics")

    def __repr__(self) -> str:
        return f"<Rubric(id={self.id}, criteria={self.criteria_name})>"
