from io import BytesIO

import pytest
from docx import Document
from PyPDF2 import PdfWriter

from hci_grader.utils.text_processing import (
    ExtractionError,
    UnsupportedDocumentError,
    detect_kind,
    extract_text,
)


@pytest.mark.parametrize(
    "filename, content_type, kind",
    [
        ("exam.pdf", None, "pdf"),
        ("upload", "application/pdf", "pdf"),
        ("answers.docx", None, "docx"),
        ("scan.JPG", None, "image"),
        ("photo", "image/png", "image"),
        ("notes.md", None, "text"),
        ("notes.txt", "text/plain", "text"),
    ],
)
def test_detect_kind(filename, content_type, kind) -> None:
    assert detect_kind(filename, content_type) == kind


def test_unsupported_file_type() -> None:
    with pytest.raises(UnsupportedDocumentError):
        detect_kind("slides.pptx", "application/vnd.ms-powerpoint")


def test_docx_paragraphs_are_joined() -> None:
    document = Document()
    document.add_paragraph("Question 1")
    document.add_paragraph("Usability is about users.")
    buffer = BytesIO()
    document.save(buffer)

    text = extract_text(buffer.getvalue(), "answers.docx")
    assert text == "Question 1\nUsability is about users."


def test_pdf_without_text_is_rejected() -> None:
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    buffer = BytesIO()
    writer.write(buffer)

    with pytest.raises(ExtractionError):
        extract_text(buffer.getvalue(), "scan.pdf")


def test_image_goes_through_reader() -> None:
    calls = []

    def reader(data: bytes, mime: str) -> str:
        calls.append(mime)
        return "OCR text"

    assert extract_text(b"\x89PNG", "scan.jpg", image_reader=reader) == "OCR text"
    assert calls == ["image/jpeg"]


def test_image_without_reader_is_rejected() -> None:
    with pytest.raises(UnsupportedDocumentError):
        extract_text(b"\x89PNG", "scan.png")


def test_markdown_is_decoded_as_utf8() -> None:
    assert extract_text("# Réponse".encode("utf-8"), "answer.md") == "# Réponse"
