"""上传文件的文本抽取工具。"""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Callable, Optional

from docx import Document as DocxDocument
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from hci_grader.exceptions import ValidationFailedError


MIN_PDF_TEXT_CHARS = 50

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".webp"}
MARKDOWN_SUFFIXES = {".md", ".markdown"}

ImageReader = Callable[[bytes, str], str]


class UnsupportedDocumentError(ValidationFailedError):
    """不支持的文件类型。"""


class ExtractionError(ValidationFailedError):
    """文件可以识别但抽不出有效文本（如扫描版 PDF）。"""


def detect_kind(filename: str, content_type: Optional[str] = None) -> str:
    """根据后缀与 MIME 判断文件类别：pdf / docx / image / text。"""

    suffix = Path(filename or "").suffix.lower()
    mime = (content_type or "").lower()
    if suffix == ".pdf" or mime == "application/pdf":
        return "pdf"
    if suffix == ".docx":
        return "docx"
    if mime.startswith("image/") or suffix in IMAGE_SUFFIXES:
        return "image"
    if suffix in MARKDOWN_SUFFIXES or suffix == ".txt" or mime.startswith("text/"):
        return "text"
    raise UnsupportedDocumentError(
        "Unsupported file type. Please upload PDF, DOCX, image, markdown, or text files."
    )


def extract_text(
    content: bytes,
    filename: str,
    content_type: Optional[str] = None,
    image_reader: Optional[ImageReader] = None,
) -> str:
    """抽取文件全文。图片需要传入 ``image_reader``（视觉模型 OCR）。"""

    kind = detect_kind(filename, content_type)
    if kind == "pdf":
        return _parse_pdf(content, filename)
    if kind == "docx":
        return _parse_docx(content)
    if kind == "image":
        if image_reader is None:
            raise UnsupportedDocumentError("Image files require a vision model")
        return image_reader(content, content_type or _guess_image_mime(filename))
    return _parse_plain(content)


def _parse_pdf(content: bytes, filename: str) -> str:
    try:
        reader = PdfReader(BytesIO(content))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as exc:
        raise ExtractionError(f"Failed to read PDF {filename}: {exc}") from exc
    text = "\n\n".join(page.strip() for page in pages if page.strip())
    if len(text.strip()) < MIN_PDF_TEXT_CHARS:
        raise ExtractionError(
            f"PDF {filename} contains too little text. It may be a scanned image; "
            "please upload it as an image instead."
        )
    return text


def _parse_docx(content: bytes) -> str:
    doc = DocxDocument(BytesIO(content))
    return "\n".join(p.text for p in doc.paragraphs)


def _parse_plain(content: bytes) -> str:
    return content.decode("utf-8", errors="ignore")


def _guess_image_mime(filename: str) -> str:
    suffix = Path(filename or "").suffix.lower().lstrip(".")
    if suffix == "jpg":
        suffix = "jpeg"
    return f"image/{suffix or 'png'}"
