"""评分 Agent 模型定义。"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hci_grader.db import Base


DEFAULT_AGENT_MODEL = "openai/gpt-4o-mini"


class GradingAgent(Base):
    """绑定到某道题的评分 Agent（名称 + 颜色 + 模型）。"""

    __tablename__ = "grading_agents"
    __table_args__ = (
        UniqueConstraint("question_id", "name", name="uq_grading_agent_question_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)  # g1, g2, g3 ...
    color: Mapped[str] = mapped_column(String(20), nullable=False)  # 十六进制颜色
    model: Mapped[str] = mapped_column(String(255), default=DEFAULT_AGENT_MODEL, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    question: Mapped["Question"] = relationship(back_populates="grading_agents")

    def __repr__(self) -> str:
        return f"<GradingAgent(id={self.id}, name={self.name}, model={self.model})>"
