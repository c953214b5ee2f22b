"""提交解析 API：上传文件或粘贴文本，映射到作业的各道题。"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from hci_grader.api.uploads import (
    form_bool,
    is_multipart,
    read_form_file,
    read_json_body,
    validate_body,
)
from hci_grader.config import Settings, get_settings
from hci_grader.dependencies import get_db, get_grading_config, get_llm_client
from hci_grader.exceptions import NotFoundError, ValidationFailedError
from hci_grader.models import Assignment
from hci_grader.schemas.parsing import ParseSubmissionRequest, ParseSubmissionResponse
from hci_grader.services.ai import OpenRouterJSONClient
from hci_grader.services.parsing import extract_student_metadata, parse_submission_text
from hci_grader.services.settings import GradingConfig
from hci_grader.services.submissions import create_submission, serialize_submission
from hci_grader.utils.text_processing import extract_text

router = APIRouter()
logger = logging.getLogger(__name__)

PREVIEW_CHARS = 2000

UploadedFile = tuple[str, Optional[str], bytes]


def _run_parse(
    db: Session,
    llm: OpenRouterJSONClient,
    config: GradingConfig,
    settings: Settings,
    payload: ParseSubmissionRequest,
    upload: Optional[UploadedFile],
) -> ParseSubmissionResponse:
    if upload is not None:
        file_name, content_type, content = upload
        text = extract_text(content, file_name, content_type, image_reader=llm.describe_image)
    else:
        text = payload.text or payload.markdown or ""
    if not text.strip():
        raise ValidationFailedError("No text could be extracted from the input")
    if payload.assignment_id is None:
        raise ValidationFailedError("Assignment ID is required")

    assignment = db.get(Assignment, payload.assignment_id)
    if not assignment:
        raise NotFoundError("Assignment not found")

    result = parse_submission_text(
        text, list(assignment.questions), llm, settings, config.extraction_context
    )

    submission = None
    if payload.create_submission:
        name, email = payload.student_name, payload.student_email
        if not name or not email:
            metadata = extract_student_metadata(text, llm, settings)
            name = name or metadata.name
            email = email or metadata.email
        created = create_submission(
            db,
            assignment,
            name,
            email,
            [(answer.question_id, answer.answer_text) for answer in result.answers],
            extracted_text=text,
            skip_empty=True,
        )
        submission = serialize_submission(created, with_answers=True)

    preview = text[:PREVIEW_CHARS] + ("..." if len(text) > PREVIEW_CHARS else "")
    return ParseSubmissionResponse(
        answers=result.answers,
        summary=result.summary,
        warnings=result.warnings,
        extracted_text=preview,
        submission=submission,
    )


@router.post("", response_model=ParseSubmissionResponse)
async def parse_submission(
    request: Request,
    db: Session = Depends(get_db),
    llm: OpenRouterJSONClient = Depends(get_llm_client),
    config: GradingConfig = Depends(get_grading_config),
    settings: Settings = Depends(get_settings),
):
    """``multipart/form-data``（file + assignmentId）或 JSON（text/markdown + assignmentId）。"""
    upload = None
    if is_multipart(request):
        form = await request.form()
        upload = await read_form_file(form, "file", settings.max_upload_bytes)
        payload = validate_body(
            ParseSubmissionRequest,
            {
                "assignmentId": form.get("assignmentId") or None,
                "createSubmission": form_bool(form.get("createSubmission"), False),
                "studentName": form.get("studentName") or None,
                "studentEmail": form.get("studentEmail") or None,
            },
        )
    else:
        payload = validate_body(ParseSubmissionRequest, await read_json_body(request))

    return await run_in_threadpool(_run_parse, db, llm, config, settings, payload, upload)
