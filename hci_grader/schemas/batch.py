"""批量上传接口模型。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from hci_grader.models.enums import BatchStatus, FileStatus, FileStep
from hci_grader.schemas.base import CamelModel


class BatchFileRead(CamelModel):
    file_name: str
    file_size: int
    status: FileStatus
    current_step: Optional[FileStep] = None
    progress: int = 0
    attempts: int = 0
    submission_id: Optional[int] = None
    student_name: Optional[str] = None
    student_email: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class BatchUploadRead(CamelModel):
    id: int
    assignment_id: int
    total_files: int
    completed_files: int
    failed_files: int
    status: BatchStatus
    files: list[BatchFileRead]
    created_at: datetime
    updated_at: datetime


class ProcessFileResponse(CamelModel):
    file: BatchFileRead
    batch: BatchUploadRead
