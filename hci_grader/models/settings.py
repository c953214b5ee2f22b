"""评分系统设置单例模型。"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hci_grader.db import Base


DEFAULT_AI_SYSTEM_PROMPT = """You are an expert educational assessment designer. Your role is to help instructors create comprehensive, fair, and well-structured rubrics for grading assignments.

When creating rubrics:
1. Consider the learning objectives and what skills/knowledge are being assessed
2. Create clear, measurable criteria that avoid ambiguity
3. Define distinct performance levels with specific descriptors
4. Assign appropriate weights based on the importance of each criterion
5. Use language that is clear to both instructors and students
6. Ensure the rubric promotes consistency in grading

For each criterion, provide:
- A clear name that identifies what is being assessed
- Multiple performance levels (typically 3-5 levels)
- Specific, observable descriptions for each level
- Percentage weights that reflect the relative importance

Always aim for rubrics that are practical, fair, and promote learning."""

DEFAULT_GRADING_AGENT_PROMPT = """You are an expert grading assistant. Your task is to evaluate a student's answer based on the provided rubrics.

CRITICAL: For each rubric criteria, you MUST provide three things:
1. suggestedLevelIndex - the level number (0, 1, 2, etc.)
2. justification - a 1-2 sentence explanation of WHY you chose this level (written in SECOND PERSON, speaking directly to the student)
3. improvementSuggestion - a 1 sentence suggestion on how the student can improve (written in SECOND PERSON, speaking directly to the student)

IMPORTANT:
- The justification and improvementSuggestion fields are REQUIRED and must not be empty.
- Write ALL feedback in SECOND PERSON (use "you", "your") as if speaking directly to the student.
- DO NOT use third person ("the student", "they", "their").

Steps:
1. Read the question and student's answer carefully
2. For each rubric criteria, evaluate the answer against each level
3. Select the most appropriate level
4. Write a clear justification in SECOND PERSON explaining your choice (e.g., "You showed...", "Your answer...")
5. Write a helpful suggestion for improvement in SECOND PERSON (e.g., "Try to...", "You could...")
6. Consider all student answers for calibration

Return ONLY valid JSON. All fields are required."""

DEFAULT_MODEL_1 = "openai/gpt-5"
DEFAULT_MODEL_2 = "google/gemini-2.5-pro"
DEFAULT_MODEL_3 = "anthropic/claude-4.5-sonnet"


class GraderSettings(Base):
    """全局设置，表中只保留一行。"""

    __tablename__ = "grader_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    openrouter_api_key: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    ai_system_prompt: Mapped[str] = mapped_column(
        Text, default=DEFAULT_AI_SYSTEM_PROMPT, nullable=False
    )
    grading_agent_prompt: Mapped[str] = mapped_column(
        Text, default=DEFAULT_GRADING_AGENT_PROMPT, nullable=False
    )
    default_model_1: Mapped[str] = mapped_column(String(255), default=DEFAULT_MODEL_1, nullable=False)
    default_model_2: Mapped[str] = mapped_column(String(255), default=DEFAULT_MODEL_2, nullable=False)
    default_model_3: Mapped[str] = mapped_column(String(255), default=DEFAULT_MODEL_3, nullable=False)

    # 试卷抽取的默认开关
    extract_rubrics: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    split_into_questions: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    extraction_context: Mapped[str] = mapped_column(Text, default="", nullable=False)

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

    def __repr__(self) -> str:
        return f"<GraderSettings(id={self.id})>"
