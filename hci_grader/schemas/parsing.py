"""提交解析（文本 → 各题答案）的模型。"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field, field_validator

from hci_grader.models.enums import Confidence
from hci_grader.schemas.base import CamelModel
from hci_grader.schemas.submissions import SubmissionDetail


class ParseSubmissionRequest(CamelModel):
    """JSON 方式提交粘贴的文本或 Markdown。"""

    assignment_id: Optional[int] = None
    text: Optional[str] = None
    markdown: Optional[str] = None
    create_submission: bool = False
    student_name: Optional[str] = None
    student_email: Optional[str] = None


class ParsedAnswer(CamelModel):
    question_id: int
    question_number: int
    question_text: str
    answer_text: str = ""
    confidence: Confidence = Confidence.LOW


class ParseResult(CamelModel):
    answers: list[ParsedAnswer]
    summary: str
    warnings: list[str] = Field(default_factory=list)


class ParseSubmissionResponse(ParseResult):
    success: bool = True
    extracted_text: str
    submission: Optional[SubmissionDetail] = None


class StudentMetadata(CamelModel):
    name: str
    email: str


# === LLM 输出契约 ===

class LLMParsedAnswer(CamelModel):
    question_id: int
    answer_text: str = ""
    confidence: Confidence = Confidence.LOW

    @field_validator("answer_text", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
        return value if value in {c.value for c in Confidence} else Confidence.LOW


class LLMParseResponse(CamelModel):
    answers: list[LLMParsedAnswer]
    summary: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)


class LLMStudentMetadata(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
