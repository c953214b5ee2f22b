"""批量上传 API。"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from hci_grader.api.uploads import read_upload
from hci_grader.config import Settings, get_settings
from hci_grader.dependencies import get_batch_processor, get_db
from hci_grader.models import Assignment, BatchUpload
from hci_grader.schemas.batch import BatchFileRead, BatchUploadRead, ProcessFileResponse
from hci_grader.services.batch import BatchProcessor, serialize_batch

router = APIRouter()


@router.post("", response_model=BatchUploadRead, status_code=status.HTTP_201_CREATED)
async def create_batch_upload(
    assignment_id: int = Form(..., alias="assignmentId"),
    files: List[UploadFile] = File(...),
    process: bool = Form(True),
    db: Session = Depends(get_db),
    processor: BatchProcessor = Depends(get_batch_processor),
    settings: Settings = Depends(get_settings),
):
    """创建批次；``process=false`` 时只建记录，由客户端逐个调用 process-file。"""
    assignment = db.get(Assignment, assignment_id)
    if not assignment:
        raise HTTPException(status_code=404, detail="Assignment not found")

    uploads = [await read_upload(upload, settings.max_upload_bytes) for upload in files]
    if process:
        batch = await run_in_threadpool(processor.enqueue, db, assignment, uploads)
    else:
        batch = await run_in_threadpool(
            processor.create_batch,
            db,
            assignment,
            [(name, len(content)) for name, _, content in uploads],
        )
    return serialize_batch(batch)


@router.get("", response_model=BatchUploadRead)
def get_batch_upload(batch_id: int = Query(..., alias="batchId"), db: Session = Depends(get_db)):
    batch = db.get(BatchUpload, batch_id)
    if not batch:
        raise HTTPException(status_code=404, detail="Batch upload not found")
    return serialize_batch(batch)


@router.post("/process-file", response_model=ProcessFileResponse)
async def process_file(
    batch_id: int = Form(..., alias="batchId"),
    file_index: int = Form(..., alias="fileIndex"),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    processor: BatchProcessor = Depends(get_batch_processor),
    settings: Settings = Depends(get_settings),
):
    """同步处理批次中的一个文件（客户端驱动的逐个处理）。"""
    file_name, content_type, content = await read_upload(file, settings.max_upload_bytes)
    entry = await run_in_threadpool(
        processor.process_file, batch_id, file_index, file_name, content_type, content
    )

    db.expire_all()
    batch = db.get(BatchUpload, batch_id)
    return ProcessFileResponse(file=BatchFileRead.model_validate(entry), batch=serialize_batch(batch))
