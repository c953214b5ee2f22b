"""AI 评分细则生成与试卷抽取的模型。"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from hci_grader.schemas.assignments import Level
from hci_grader.schemas.base import CamelModel


class ConversationMessage(CamelModel):
    role: Literal["user", "assistant"]
    content: str


class DraftRubric(CamelModel):
    """尚未入库的评分细则草稿。"""

    criteria_name: str
    description: str = ""
    levels: list[Level] = Field(min_length=1)


class RubricGenerationRequest(CamelModel):
    user_prompt: str = Field(min_length=1)
    number_of_levels: Optional[int] = Field(default=None, ge=1, le=10)
    conversation_history: list[ConversationMessage] = Field(default_factory=list)
    current_rubrics: list[DraftRubric] = Field(default_factory=list)


class RubricGenerationResponse(CamelModel):
    rubrics: list[DraftRubric]
    explanation: str = ""
    conversation_history: list[ConversationMessage]


class ExamExtractionRequest(CamelModel):
    text: str = Field(min_length=1)
    split_into_questions: Optional[bool] = None
    extract_rubrics: Optional[bool] = None
    extraction_context: Optional[str] = None


class ExtractedQuestion(CamelModel):
    question_text: str
    question_number: int
    points_percentage: float = Field(ge=0, le=100)
    rubrics: list[DraftRubric] = Field(default_factory=list)


class ExamExtractionResponse(CamelModel):
    questions: list[ExtractedQuestion]
    total_points: Optional[float] = 100
    summary: Optional[str] = ""


# === LLM 输出契约 ===

class GeneratedRubrics(CamelModel):
    rubrics: list[DraftRubric]
    explanation: str = ""
