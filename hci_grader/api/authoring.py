"""AI 出题辅助 API：评分细则生成与试卷抽取。"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from hci_grader.api.uploads import (
    form_bool,
    is_multipart,
    read_form_file,
    read_json_body,
    validate_body,
)
from hci_grader.config import Settings, get_settings
from hci_grader.dependencies import get_grading_config, get_llm_client
from hci_grader.exceptions import ValidationFailedError
from hci_grader.schemas.authoring import (
    ExamExtractionRequest,
    ExamExtractionResponse,
    RubricGenerationRequest,
    RubricGenerationResponse,
)
from hci_grader.services.ai import OpenRouterJSONClient
from hci_grader.services.authoring import AuthoringService
from hci_grader.services.settings import GradingConfig
from hci_grader.utils.text_processing import UnsupportedDocumentError, detect_kind, extract_text

rubric_router = APIRouter()
exam_router = APIRouter()


@rubric_router.post("", response_model=RubricGenerationResponse)
def generate_rubrics(
    data: RubricGenerationRequest,
    llm: OpenRouterJSONClient = Depends(get_llm_client),
    config: GradingConfig = Depends(get_grading_config),
    settings: Settings = Depends(get_settings),
):
    """根据教师描述生成或修订评分细则，支持多轮对话。"""
    return AuthoringService(llm, config, settings).generate_rubrics(data)


@exam_router.post("", response_model=ExamExtractionResponse)
async def extract_exam(
    request: Request,
    llm: OpenRouterJSONClient = Depends(get_llm_client),
    config: GradingConfig = Depends(get_grading_config),
    settings: Settings = Depends(get_settings),
):
    """从试卷（PDF / Markdown 文件或 JSON 文本）抽取题目与评分细则。"""
    if is_multipart(request):
        form = await request.form()
        file_name, content_type, content = await read_form_file(
            form, "file", settings.max_upload_bytes
        )
        if detect_kind(file_name, content_type) not in {"pdf", "text"}:
            raise UnsupportedDocumentError("Please upload a PDF or Markdown file")
        text = await run_in_threadpool(extract_text, content, file_name, content_type)
        if not text.strip():
            raise ValidationFailedError("Failed to extract text from input")
        payload = validate_body(
            ExamExtractionRequest,
            {
                "text": text,
                "splitIntoQuestions": form_bool(form.get("splitIntoQuestions")),
                "extractRubrics": form_bool(form.get("extractRubrics")),
                "extractionContext": form.get("extractionContext"),
            },
        )
    else:
        payload = validate_body(ExamExtractionRequest, await read_json_body(request))

    service = AuthoringService(llm, config, settings)
    return await run_in_threadpool(service.extract_exam, payload)
