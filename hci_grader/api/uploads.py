"""请求体读取辅助：同一接口既接受 multipart 表单也接受 JSON。"""

from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import Request, UploadFile
from pydantic import BaseModel, ValidationError
from starlette.datastructures import FormData

from hci_grader.exceptions import ValidationFailedError
from hci_grader.utils.storage import read_upload_file


def is_multipart(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("multipart/form-data")


async def read_json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError as exc:
        raise ValidationFailedError("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise ValidationFailedError("Request body must be a JSON object")
    return body


async def read_form_file(
    form: FormData, field: str, max_bytes: int
) -> tuple[str, Optional[str], bytes]:
    upload = form.get(field)
    if upload is None or isinstance(upload, str):
        raise ValidationFailedError("No file provided")
    return await read_upload(upload, max_bytes)


async def read_upload(upload: UploadFile, max_bytes: int) -> tuple[str, Optional[str], bytes]:
    try:
        content = await read_upload_file(upload, max_bytes=max_bytes)
    except ValueError as exc:
        raise ValidationFailedError(str(exc)) from exc
    return upload.filename or "upload", upload.content_type, content


def form_bool(value: Any, default: Optional[bool] = None) -> Optional[bool]:
    if value is None or value == "":
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def validate_body(schema: type[BaseModel], data: dict[str, Any]):
    """把请求体校验错误转换为 400。"""

    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationFailedError(f"{location}: {first.get('msg')}".strip(": ")) from exc
