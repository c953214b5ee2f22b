"""核心 SQLAlchemy 模型定义。"""

from hci_grader.models.assignment import Assignment, Question, Rubric
from hci_grader.models.batch_upload import BatchUpload
from hci_grader.models.enums import (
    STEP_PROGRESS,
    BatchStatus,
    Confidence,
    FileStatus,
    FileStep,
    ProcessingStatus,
)
from hci_grader.models.grading_agent import GradingAgent
from hci_grader.models.settings import GraderSettings
from hci_grader.models.submission import Answer, Submission

__all__ = [
    "Answer",
    "Assignment",
    "BatchStatus",
    "BatchUpload",
    "Confidence",
    "FileStatus",
    "FileStep",
    "GraderSettings",
    "GradingAgent",
    "ProcessingStatus",
    "Question",
    "Rubric",
    "STEP_PROGRESS",
    "Submission",
]
