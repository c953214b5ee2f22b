"""学生提交与答案模型定义。"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from hci_grader.db import Base
from hci_grader.models.enums import ProcessingStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Submission(Base):
    """一名学生对某个作业的整份提交。

    删除提交时其下所有答案在同一事务中级联删除。
    """

    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assignment_id: Mapped[int] = mapped_column(
        ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_email: Mapped[str] = mapped_column(String(255), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    processing_status: Mapped[ProcessingStatus] = mapped_column(
        Enum(ProcessingStatus), default=ProcessingStatus.COMPLETED, nullable=False
    )
    # 批量上传时保存的原始文本（截断）
    extracted_text: Mapped[Optional[str]] = mapped_column(Text)
    batch_upload_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("batch_uploads.id", ondelete="SET NULL")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    assignment: Mapped["Assignment"] = relationship(back_populates="submissions")
    answers: Mapped[List["Answer"]] = relationship(
        back_populates="submission", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Submission(id={self.id}, student={self.student_name})>"


class Answer(Base):
    """学生对单道题的作答及其评分。"""

    __tablename__ = "answers"
    __table_args__ = (
        UniqueConstraint("submission_id", "question_id", name="uq_answer_submission_question"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id: Mapped[int] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    answer_text: Mapped[str] = mapped_column(Text, nullable=False)

    # 各维度评价
    # 格式: [{"rubric_id": 1, "selected_level_index": 2, "feedback": "...",
    #        "agent_suggestions": [{"agent_id": 1, "suggested_level_index": 2,
    #                               "justification": "...", "improvement_suggestion": "..."}]}]
    criteria_evaluations_json: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)

    # 派生字段，由 services.scoring 在每次写入时重算
    points_percentage: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    submission: Mapped[Submission] = relationship(back_populates="answers")
    question: Mapped["Question"] = relationship(back_populates="answers")

    def __repr__(self) -> str:
        return f"<Answer(id={self.id}, question_id={self.question_id}, pct={self.points_percentage})>"
