import threading

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from hci_grader.config import get_settings
from hci_grader.db import Base
from hci_grader.exceptions import LLMUpstreamError, ValidationFailedError
from hci_grader.models import (
    Assignment,
    BatchStatus,
    BatchUpload,
    FileStatus,
    Question,
    Submission,
)
from hci_grader.services.batch import BatchProcessor, FileTask, aggregate_status
from hci_grader.services.settings import SettingsStore

from tests.conftest import FakeLLM


@pytest.mark.parametrize(
    "total, completed, failed, expected",
    [
        (3, 1, 0, BatchStatus.PROCESSING),
        (3, 3, 0, BatchStatus.COMPLETED),
        (3, 0, 3, BatchStatus.FAILED),
        (3, 2, 1, BatchStatus.PARTIAL),
    ],
)
def test_aggregate_status(total, completed, failed, expected) -> None:
    assert aggregate_status(total, completed, failed) == expected


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'batch.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def assignment_id(session_factory):
    with session_factory() as db:
        assignment = Assignment(title="Batch", total_points=100)
        assignment.questions.extend(
            [
                Question(question_text="Define usability.", question_number=1, points_percentage=50),
                Question(question_text="Explain Fitts's law.", question_number=2, points_percentage=50),
            ]
        )
        db.add(assignment)
        db.commit()
        return assignment.id


def _processor(session_factory, llm, sleeps):
    settings = get_settings()
    return BatchProcessor(
        session_factory,
        settings,
        SettingsStore(settings),
        llm_factory=lambda config: llm,
        max_workers=1,
        sleep=sleeps.append,
    )


def _parse_reply(session_factory, assignment_id):
    with session_factory() as db:
        q1, q2 = db.get(Assignment, assignment_id).questions
        return {
            "answers": [
                {"questionId": q1.id, "answerText": "Usability is...", "confidence": "high"},
                {"questionId": q2.id, "answerText": "Time to target...", "confidence": "medium"},
            ],
            "summary": "Extracted 2/2 answers",
            "warnings": [],
        }


def test_batch_counts_each_file_once(session_factory, assignment_id) -> None:
    llm = FakeLLM(
        [
            {"name": "Ada", "email": "ada@example.com"},
            _parse_reply(session_factory, assignment_id),
        ]
    )
    processor = _processor(session_factory, llm, [])
    with session_factory() as db:
        batch = processor.enqueue(
            db,
            db.get(Assignment, assignment_id),
            [
                ("ada.txt", "text/plain", b"Ada ada@example.com\n1. Usability is...\n2. Time..."),
                ("deck.pptx", "application/vnd.ms-powerpoint", b"PK"),
            ],
        )
        batch_id = batch.id
    processor.wait(batch_id, timeout=30)
    processor.shutdown()

    with session_factory() as db:
        batch = db.get(BatchUpload, batch_id)
        assert (batch.completed_files, batch.failed_files) == (1, 1)
        assert batch.status == BatchStatus.PARTIAL
        ok, bad = batch.files_json
        assert ok["status"] == FileStatus.COMPLETED.value
        assert ok["progress"] == 100
        assert ok["student_name"] == "Ada"
        # 400 errors are not retried
        assert bad["status"] == FileStatus.ERROR.value
        assert bad["attempts"] == 1
        assert "Unsupported file type" in bad["error"]

        submission = db.query(Submission).one()
        assert submission.batch_upload_id == batch_id
        assert len(submission.answers) == 2


def test_upstream_errors_are_retried_with_backoff(session_factory, assignment_id) -> None:
    sleeps = []
    llm = FakeLLM(
        [
            {"name": "Bo", "email": "bo@example.com"},
            LLMUpstreamError("rate limited"),
            {"name": "Bo", "email": "bo@example.com"},
            _parse_reply(session_factory, assignment_id),
        ]
    )
    processor = _processor(session_factory, llm, sleeps)
    with session_factory() as db:
        batch = processor.create_batch(db, db.get(Assignment, assignment_id), [("bo.md", 10)])
        batch_id = batch.id

    entry = processor.process_file(batch_id, 0, "bo.md", "text/markdown", b"Bo\n1. A\n2. B")

    assert entry["status"] == FileStatus.COMPLETED.value
    assert entry["attempts"] == 2
    assert sleeps == [get_settings().batch_retry_backoff_seconds]
    with session_factory() as db:
        assert db.get(BatchUpload, batch_id).status == BatchStatus.COMPLETED


def test_failed_file_can_be_processed_again(session_factory, assignment_id) -> None:
    llm = FakeLLM(
        [
            {"name": "Cy", "email": "cy@example.com"},
            _parse_reply(session_factory, assignment_id),
        ]
    )
    processor = _processor(session_factory, llm, [])
    with session_factory() as db:
        batch = processor.create_batch(db, db.get(Assignment, assignment_id), [("cy.bin", 3)])
        batch_id = batch.id

    failed = processor.process_file(batch_id, 0, "cy.bin", "application/octet-stream", b"???")
    assert failed["status"] == FileStatus.ERROR.value
    with session_factory() as db:
        assert db.get(BatchUpload, batch_id).status == BatchStatus.FAILED

    retried = processor.process_file(batch_id, 0, "cy.txt", "text/plain", b"Cy\n1. A\n2. B")
    assert retried["status"] == FileStatus.COMPLETED.value
    with session_factory() as db:
        batch = db.get(BatchUpload, batch_id)
        assert (batch.completed_files, batch.failed_files) == (1, 0)
        assert batch.status == BatchStatus.COMPLETED

    with pytest.raises(ValidationFailedError):
        processor.process_file(batch_id, 0, "cy.txt", "text/plain", b"again")
    with pytest.raises(ValidationFailedError):
        processor.process_file(batch_id, 5, "cy.txt", "text/plain", b"again")


def test_enqueue_requires_questions(session_factory) -> None:
    processor = _processor(session_factory, FakeLLM(), [])
    with session_factory() as db:
        assignment = Assignment(title="Empty", total_points=100)
        db.add(assignment)
        db.commit()
        with pytest.raises(ValidationFailedError):
            processor.enqueue(db, assignment, [("a.txt", "text/plain", b"text")])


class BlockingLLM(FakeLLM):
    """第一次调用时阻塞，直到测试放行。"""

    def __init__(self, replies=None):
        super().__init__(replies)
        self.started = threading.Event()
        self.release = threading.Event()

    def complete(self, messages, model, **kwargs):
        if not self.started.is_set():
            self.started.set()
            self.release.wait(timeout=30)
        return super().complete(messages, model, **kwargs)


def test_queued_file_processed_directly_is_not_run_again(session_factory, assignment_id) -> None:
    parse = _parse_reply(session_factory, assignment_id)
    llm = BlockingLLM(
        [
            {"name": "Bo", "email": "bo@example.com"},
            parse,
            {"name": "Ada", "email": "ada@example.com"},
            parse,
        ]
    )
    processor = _processor(session_factory, llm, [])
    with session_factory() as db:
        batch = processor.enqueue(
            db,
            db.get(Assignment, assignment_id),
            [
                ("ada.txt", "text/plain", b"Ada\n1. Usability is...\n2. Time..."),
                ("bo.txt", "text/plain", b"Bo\n1. Usability is...\n2. Time..."),
            ],
        )
        batch_id = batch.id

    try:
        # the single worker is busy with the first file, the second is still queued
        assert llm.started.wait(timeout=30)
        entry = processor.process_file(
            batch_id, 1, "bo.txt", "text/plain", b"Bo\n1. Usability is...\n2. Time..."
        )
        assert entry["status"] == FileStatus.COMPLETED.value
        with pytest.raises(ValidationFailedError):
            processor.process_file(batch_id, 0, "ada.txt", "text/plain", b"Ada")
    finally:
        llm.release.set()
    processor.wait(batch_id, timeout=30)
    processor.shutdown()

    assert len(llm.calls) == 4
    assert processor._futures == {}
    with session_factory() as db:
        batch = db.get(BatchUpload, batch_id)
        assert (batch.total_files, batch.completed_files, batch.failed_files) == (2, 2, 0)
        assert batch.status == BatchStatus.COMPLETED
        assert [f["attempts"] for f in batch.files_json] == [1, 1]
        assert sorted(s.student_name for s in db.query(Submission)) == ["Ada", "Bo"]


def test_worker_skips_file_that_already_finished(session_factory, assignment_id) -> None:
    llm = FakeLLM(
        [
            {"name": "Di", "email": "di@example.com"},
            _parse_reply(session_factory, assignment_id),
        ]
    )
    processor = _processor(session_factory, llm, [])
    with session_factory() as db:
        batch = processor.create_batch(db, db.get(Assignment, assignment_id), [("di.txt", 10)])
        batch_id = batch.id
    processor.process_file(batch_id, 0, "di.txt", "text/plain", b"Di\n1. A\n2. B")

    late = processor.run_task(
        FileTask(batch_id, assignment_id, 0, "di.txt", "text/plain", b"Di\n1. A\n2. B")
    )

    assert late["status"] == FileStatus.COMPLETED.value
    assert len(llm.calls) == 2
    with session_factory() as db:
        batch = db.get(BatchUpload, batch_id)
        assert (batch.completed_files, batch.failed_files) == (1, 0)
        assert db.query(Submission).count() == 1


def test_client_driven_batch_endpoints(
    client: TestClient, fake_llm: FakeLLM, session
) -> None:
    assignment = Assignment(title="Essay", total_points=20)
    assignment.questions.append(Question(question_text="Essay", question_number=1))
    session.add(assignment)
    session.commit()

    created = client.post(
        "/api/batch-upload",
        data={"assignmentId": str(assignment.id), "process": "false"},
        files=[("files", ("ada.txt", b"Ada Lovelace\nMy essay.", "text/plain"))],
    )
    assert created.status_code == 201
    batch = created.json()
    assert batch["status"] == "pending"
    assert batch["files"][0]["fileName"] == "ada.txt"

    fake_llm.queue({"name": "Ada Lovelace", "email": "ada@example.com"})
    response = client.post(
        "/api/batch-upload/process-file",
        data={"batchId": str(batch["id"]), "fileIndex": "0"},
        files={"file": ("ada.txt", b"Ada Lovelace\nMy essay.", "text/plain")},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["file"]["status"] == "completed"
    assert body["file"]["submissionId"] is not None
    assert body["batch"]["status"] == "completed"

    polled = client.get("/api/batch-upload", params={"batchId": batch["id"]})
    assert polled.json()["completedFiles"] == 1
    assert client.get("/api/batch-upload", params={"batchId": 999}).status_code == 404
