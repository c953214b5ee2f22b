"""批量上传：任务队列 + 线程池 worker，把多份文件转成提交。

每个文件一个任务，任务内使用独立的数据库 Session。文件先在 ``_lock`` 内以
pending -> processing 的方式被认领，认领失败的任务直接跳过；文件条目、计数器与
整体状态的更新都在 ``_lock`` 内的单个事务中完成，保证每个文件只处理、只计数一次。
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from sqlalchemy.orm import Session, sessionmaker

from hci_grader.config import Settings
from hci_grader.exceptions import GraderError, NotFoundError, ValidationFailedError
from hci_grader.models import (
    STEP_PROGRESS,
    Assignment,
    BatchStatus,
    BatchUpload,
    FileStatus,
    FileStep,
)
from hci_grader.db import session_scope
from hci_grader.schemas.batch import BatchUploadRead
from hci_grader.services.ai import OpenRouterJSONClient
from hci_grader.services.parsing import extract_student_metadata, parse_submission_text
from hci_grader.services.settings import GradingConfig, SettingsStore
from hci_grader.services.submissions import create_submission
from hci_grader.utils.text_processing import ExtractionError, extract_text


logger = logging.getLogger(__name__)

LLMFactory = Callable[[GradingConfig], OpenRouterJSONClient]


@dataclass(frozen=True)
class FileTask:
    batch_id: int
    assignment_id: int
    index: int
    file_name: str
    content_type: Optional[str]
    content: bytes


def new_file_entry(file_name: str, file_size: int) -> dict[str, Any]:
    return {
        "file_name": file_name,
        "file_size": file_size,
        "status": FileStatus.PENDING.value,
        "current_step": None,
        "progress": 0,
        "attempts": 0,
        "submission_id": None,
        "student_name": None,
        "student_email": None,
        "error": None,
        "started_at": None,
        "completed_at": None,
    }


def aggregate_status(total: int, completed: int, failed: int) -> BatchStatus:
    """未全部结束为 processing；全部结束后按失败数归类。"""

    if completed + failed < total:
        return BatchStatus.PROCESSING
    if failed == 0:
        return BatchStatus.COMPLETED
    if completed == 0:
        return BatchStatus.FAILED
    return BatchStatus.PARTIAL


def serialize_batch(batch: BatchUpload) -> BatchUploadRead:
    return BatchUploadRead(
        id=batch.id,
        assignment_id=batch.assignment_id,
        total_files=batch.total_files,
        completed_files=batch.completed_files,
        failed_files=batch.failed_files,
        status=batch.status,
        files=batch.files_json or [],
        created_at=batch.created_at,
        updated_at=batch.updated_at,
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, GraderError):
        return exc.status_code >= 500
    return True


class BatchProcessor:
    """有界线程池，负责执行批量上传中的文件任务。"""

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Settings,
        settings_store: SettingsStore,
        llm_factory: Optional[LLMFactory] = None,
        max_workers: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self.settings_store = settings_store
        self.llm_factory = llm_factory or (
            lambda config: OpenRouterJSONClient(settings, config.api_key)
        )
        self.max_workers = max_workers or settings.batch_max_workers
        self._sleep = sleep
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._futures: dict[int, list[Future]] = {}

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="batch-upload"
            )
        return self._executor

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    # === 入队 ===

    def create_batch(
        self, db: Session, assignment: Assignment, files: Sequence[tuple[str, int]]
    ) -> BatchUpload:
        """只创建记录，``files`` 为 ``(文件名, 字节数)`` 列表。"""

        if not files:
            raise ValidationFailedError("At least one file is required")
        batch = BatchUpload(
            assignment_id=assignment.id,
            total_files=len(files),
            completed_files=0,
            failed_files=0,
            status=BatchStatus.PENDING,
            files_json=[new_file_entry(name, size) for name, size in files],
        )
        db.add(batch)
        db.commit()
        db.refresh(batch)
        return batch

    def enqueue(
        self,
        db: Session,
        assignment: Assignment,
        files: Sequence[tuple[str, Optional[str], bytes]],
    ) -> BatchUpload:
        """创建批次并为每个文件提交一个后台任务。"""

        if not assignment.questions:
            raise ValidationFailedError("No questions found for this assignment")
        batch = self.create_batch(
            db, assignment, [(name, len(content)) for name, _, content in files]
        )
        futures = [
            self.executor.submit(
                self.run_task,
                FileTask(batch.id, assignment.id, index, name, content_type, content),
            )
            for index, (name, content_type, content) in enumerate(files)
        ]
        with self._lock:
            self._futures[batch.id] = futures
        for future in futures:
            future.add_done_callback(lambda _, batch_id=batch.id: self._prune(batch_id))
        logger.info("Batch %s queued with %d files", batch.id, len(files))
        return batch

    def wait(self, batch_id: int, timeout: Optional[float] = None) -> None:
        """等待某个批次的所有后台任务结束。"""

        with self._lock:
            futures = list(self._futures.get(batch_id, []))
        for future in futures:
            future.result(timeout=timeout)
        with self._lock:
            self._futures.pop(batch_id, None)

    def _prune(self, batch_id: int) -> None:
        with self._lock:
            futures = self._futures.get(batch_id)
            if futures is not None and all(f.done() for f in futures):
                del self._futures[batch_id]

    # === 同步处理单个文件 ===

    def process_file(
        self,
        batch_id: int,
        index: int,
        file_name: str,
        content_type: Optional[str],
        content: bytes,
    ) -> dict[str, Any]:
        """在当前线程处理已有批次中的一个文件，返回最终的文件条目。"""

        with self._lock, session_scope(self.session_factory) as db:
            batch = db.get(BatchUpload, batch_id)
            if not batch:
                raise NotFoundError("Batch upload not found")
            files = copy.deepcopy(batch.files_json or [])
            if not 0 <= index < len(files):
                raise ValidationFailedError(f"File index {index} out of range")
            entry = files[index]
            if entry["status"] in (FileStatus.COMPLETED.value, FileStatus.PROCESSING.value):
                raise ValidationFailedError(f"File is already {entry['status']}")
            if entry["status"] == FileStatus.ERROR.value:
                # 重新处理失败的文件：先撤销其失败计数
                batch.failed_files -= 1
                entry.update(completed_at=None)
            entry.update(file_name=file_name, file_size=len(content))
            self._claim_entry(batch, files, index)
            assignment_id = batch.assignment_id

        task = FileTask(batch_id, assignment_id, index, file_name, content_type, content)
        return self._execute(task)

    # === worker ===

    def run_task(self, task: FileTask) -> dict[str, Any]:
        """线程池入口：先认领文件，已被认领或已结束的文件直接跳过。"""

        with self._lock, session_scope(self.session_factory) as db:
            batch = db.get(BatchUpload, task.batch_id)
            if not batch:
                raise NotFoundError("Batch upload not found")
            files = copy.deepcopy(batch.files_json or [])
            entry = files[task.index]
            if entry["status"] != FileStatus.PENDING.value:
                logger.info(
                    "Batch %s file %s already %s, skipping",
                    task.batch_id,
                    task.file_name,
                    entry["status"],
                )
                return entry
            self._claim_entry(batch, files, task.index)
        return self._execute(task)

    @staticmethod
    def _claim_entry(batch: BatchUpload, files: list[dict[str, Any]], index: int) -> None:
        files[index].update(
            status=FileStatus.PROCESSING.value,
            attempts=1,
            error=None,
            started_at=_now(),
        )
        batch.files_json = files
        batch.status = aggregate_status(
            batch.total_files, batch.completed_files, batch.failed_files
        )

    def _execute(self, task: FileTask) -> dict[str, Any]:
        max_attempts = self.settings.batch_max_attempts
        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                self._update_file(task, attempts=attempt, error=None, started_at=_now())
            try:
                submission_id = self._process_once(task)
            except Exception as exc:
                message = exc.message if isinstance(exc, GraderError) else str(exc)
                if not _is_retryable(exc) or attempt == max_attempts:
                    logger.error(
                        "Batch %s file %s failed after %d attempt(s): %s",
                        task.batch_id,
                        task.file_name,
                        attempt,
                        message,
                    )
                    return self._finish(task, error=message or exc.__class__.__name__)
                delay = self.settings.batch_retry_backoff_seconds * 2 ** (attempt - 1)
                logger.warning(
                    "Batch %s file %s attempt %d/%d failed: %s; retrying in %.1fs",
                    task.batch_id,
                    task.file_name,
                    attempt,
                    max_attempts,
                    message,
                    delay,
                )
                self._sleep(delay)
            else:
                return self._finish(task, submission_id=submission_id)
        raise AssertionError("unreachable")

    def _process_once(self, task: FileTask) -> int:
        with session_scope(self.session_factory) as db:
            config = self.settings_store.get(db)
            llm = self.llm_factory(config)
            assignment = db.get(Assignment, task.assignment_id)
            if not assignment:
                raise NotFoundError("Assignment not found")
            questions = list(assignment.questions)
            if not questions:
                raise ValidationFailedError("No questions found for this assignment")

            self._set_step(task, FileStep.EXTRACTING_TEXT)
            text = extract_text(
                task.content, task.file_name, task.content_type, image_reader=llm.describe_image
            )
            if not text.strip():
                raise ExtractionError(f"No text could be extracted from {task.file_name}")

            self._set_step(task, FileStep.EXTRACTING_METADATA)
            metadata = extract_student_metadata(text, llm, self.settings)
            self._update_file(task, student_name=metadata.name, student_email=metadata.email)

            self._set_step(task, FileStep.PARSING_ANSWERS)
            parsed = parse_submission_text(
                text, questions, llm, self.settings, config.extraction_context
            )

            self._set_step(task, FileStep.CREATING_SUBMISSION)
            submission = create_submission(
                db,
                assignment,
                metadata.name,
                metadata.email,
                [(answer.question_id, answer.answer_text) for answer in parsed.answers],
                extracted_text=text,
                batch_upload_id=task.batch_id,
                skip_empty=True,
            )
            return submission.id

    def _set_step(self, task: FileTask, step: FileStep) -> None:
        logger.info("Batch %s file %s: %s", task.batch_id, task.file_name, step.value)
        self._update_file(task, current_step=step.value, progress=STEP_PROGRESS[step])

    def _update_file(self, task: FileTask, **changes: Any) -> dict[str, Any]:
        with self._lock, session_scope(self.session_factory) as db:
            batch = db.get(BatchUpload, task.batch_id)
            if not batch:
                raise NotFoundError("Batch upload not found")
            files = copy.deepcopy(batch.files_json or [])
            files[task.index].update(changes)
            batch.files_json = files
            if batch.status == BatchStatus.PENDING:
                batch.status = BatchStatus.PROCESSING
            return files[task.index]

    def _finish(
        self,
        task: FileTask,
        submission_id: Optional[int] = None,
        error: Optional[str] = None,
    ) -> dict[str, Any]:
        """文件结束：更新条目、计数器与整体状态（同一事务）。"""

        with self._lock, session_scope(self.session_factory) as db:
            batch = db.get(BatchUpload, task.batch_id)
            if not batch:
                raise NotFoundError("Batch upload not found")
            files = copy.deepcopy(batch.files_json or [])
            entry = files[task.index]
            if error is None:
                entry.update(
                    status=FileStatus.COMPLETED.value,
                    progress=100,
                    submission_id=submission_id,
                    error=None,
                )
                batch.completed_files += 1
            else:
                entry.update(status=FileStatus.ERROR.value, error=error)
                batch.failed_files += 1
            entry["completed_at"] = _now()
            batch.files_json = files
            batch.status = aggregate_status(
                batch.total_files, batch.completed_files, batch.failed_files
            )
            logger.info(
                "Batch %s: %d/%d completed, %d failed, status=%s",
                batch.id,
                batch.completed_files,
                batch.total_files,
                batch.failed_files,
                batch.status.value,
            )
            return entry
