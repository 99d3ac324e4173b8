"""Pytest hooks and shared document builders for the integrity engine tests."""

import io
import shutil

import pytest


def pytest_configure(config):
    """Remind that image OCR tests degrade to empty pages without the tesseract binary."""
    if not shutil.which("tesseract"):
        print("\nTip: tesseract is not on PATH; image uploads will extract as empty pages.\n", end="")


def build_pdf(pages_content: list) -> bytes:
    """
    Create a PDF with the given text per page ("" leaves a page blank).
    """
    import fitz  # PyMuPDF

    pdf = fitz.open()
    for page_text in pages_content:
        page = pdf.new_page(width=595, height=842)
        if page_text:
            page.insert_text((50, 72), page_text, fontsize=11)
    data = pdf.tobytes()
    pdf.close()
    return data


def build_docx(segments: list) -> bytes:
    """
    Create a .docx with an explicit page break between consecutive segments.
    Each segment is a list of paragraph strings (possibly empty).
    """
    import docx

    document = docx.Document()
    for i, paragraphs in enumerate(segments):
        if i > 0:
            document.add_page_break()
        for text in paragraphs:
            document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def make_docx():
    return build_docx
