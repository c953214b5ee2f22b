"""批量上传任务记录。"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import DateTime, Enum, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from hci_grader.db import Base
from hci_grader.models.enums import BatchStatus


class BatchUpload(Base):
    """一次批量上传，汇总所有文件的处理进度。

    计数器、文件条目与整体状态只由 ``services.batch`` 在进程锁内更新。
    """

    __tablename__ = "batch_uploads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assignment_id: Mapped[int] = mapped_column(
        ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    total_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[BatchStatus] = mapped_column(
        Enum(BatchStatus), default=BatchStatus.PENDING, nullable=False
    )

    # 每个文件的进度
    # 格式: [{"file_name": "...", "file_size": 1024, "status": "pending",
    #        "current_step": null, "progress": 0, "attempts": 0, "submission_id": null,
    #        "student_name": null, "student_email": null, "error": null,
    #        "started_at": null, "completed_at": null}]
    files_json: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)

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

    assignment: Mapped["Assignment"] = relationship(back_populates="batch_uploads")

    def __repr__(self) -> str:
        return f"<BatchUpload(id={self.id}, status={self.status})>"
