"""
Text extraction adapter: turns raw upload bytes into an ordered list of pages.

extract_pages() never raises. Parser errors and timeouts degrade to a
best-effort fallback so hashing always has something to work with:
  - PDF / Word: a single page holding the raw bytes decoded as UTF-8
  - images and anything else: a single empty page

Page numbering differs by format:
  - PDF keeps the physical (1-based) page index and drops pages with no text
  - DOCX splits on explicit page breaks and keeps every segment, empty or not
"""

import io
import logging
import mimetypes
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout
from typing import Callable, Dict, List, Optional

import docx
import fitz  # PyMuPDF
import pytesseract
from docx.oxml.ns import qn
from PIL import Image

from integrity.engine_config import get_config
from integrity.errors import ExtractionFailure
from integrity.schema import Page

logger = logging.getLogger(__name__)

PDF = "application/pdf"
DOC = "application/msword"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PLAIN_TEXT = "text/plain"
IMAGE_TYPES = ("image/jpeg", "image/png")

# Form feed marks an explicit page break in extracted Word text
PAGE_BREAK = "\f"

_slots: Optional[threading.BoundedSemaphore] = None
_slots_lock = threading.Lock()


def _get_slots() -> threading.BoundedSemaphore:
    """Caps how many parsers run at once (EXTRACTION_MAX_WORKERS)."""
    global _slots
    with _slots_lock:
        if _slots is None:
            _slots = threading.BoundedSemaphore(max(1, get_config().extraction_max_workers))
        return _slots


def _start_parser(extractor: Callable[[bytes], List[Page]], data: bytes) -> Future:
    """
    Run one parser on its own daemon thread.

    A parser that never returns is abandoned with its thread: it holds no
    pool worker, so later extractions start immediately, and it does not
    keep the interpreter alive at exit.
    """
    future: Future = Future()

    def _run():
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(extractor(data))
        except Exception as e:
            future.set_exception(e)

    threading.Thread(target=_run, name="extract", daemon=True).start()
    return future


def normalize_mime_type(mime_type: Optional[str], filename: Optional[str] = None) -> str:
    """
    Lower-case the MIME type and drop parameters ("text/plain; charset=utf-8").
    Falls back to guessing from the filename when the type is missing or generic.
    """
    mime = (mime_type or "").split(";", 1)[0].strip().lower()
    if (not mime or mime == "application/octet-stream") and filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            mime = guessed
    return mime or "application/octet-stream"


def decode_bytes(data: bytes) -> str:
    """Interpret bytes as UTF-8, replacing undecodable sequences."""
    return data.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# Format-specific parsers (may raise; wrapped by extract_pages)
# ---------------------------------------------------------------------------

def _extract_pdf_pages(data: bytes) -> List[Page]:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        raise ExtractionFailure(f"Could not open PDF: {e}") from e

    if doc.page_count == 0:
        doc.close()
        raise ExtractionFailure("PDF has no pages")

    pages = []
    try:
        for idx in range(doc.page_count):
            page = doc.load_page(idx)
            text = (page.get_text("text") or "").strip()
            if not text:
                continue
            pages.append(Page(page_number=idx + 1, content=text))
    finally:
        doc.close()
    return pages


def _docx_paragraph_text(paragraph) -> str:
    parts = []
    for node in paragraph.iter():
        if node.tag == qn("w:t"):
            parts.append(node.text or "")
        elif node.tag == qn("w:tab"):
            # w:tab inside w:tabs is a tab-stop definition, not content
            if node.getparent().tag != qn("w:tabs"):
                parts.append("\t")
        elif node.tag in (qn("w:br"), qn("w:cr")):
            parts.append(PAGE_BREAK if node.get(qn("w:type")) == "page" else "\n")
    return "".join(parts)


def docx_text(data: bytes) -> str:
    """Full text of a .docx with explicit page breaks rendered as form feeds."""
    document = docx.Document(io.BytesIO(data))
    body = document.element.body
    return "\n".join(_docx_paragraph_text(p) for p in body.iter(qn("w:p")))


def _extract_docx_pages(data: bytes) -> List[Page]:
    try:
        text = docx_text(data)
    except Exception as e:
        raise ExtractionFailure(f"Could not read Word document: {e}") from e
    # No filtering: empty segments between consecutive breaks are pages too
    return [
        Page(page_number=i, content=segment)
        for i, segment in enumerate(text.split(PAGE_BREAK), start=1)
    ]


def _extract_plain_text(data: bytes) -> List[Page]:
    return [Page(page_number=1, content=decode_bytes(data))]


def _extract_image_text(data: bytes) -> List[Page]:
    try:
        image = Image.open(io.BytesIO(data))
        text = pytesseract.image_to_string(image)
    except Exception as e:
        raise ExtractionFailure(f"OCR unavailable for image: {e}") from e
    return [Page(page_number=1, content=text or "")]


def _empty_page(data: bytes) -> List[Page]:
    return [Page(page_number=1, content="")]


def _raw_text_page(data: bytes) -> List[Page]:
    return [Page(page_number=1, content=decode_bytes(data))]


EXTRACTORS: Dict[str, Callable[[bytes], List[Page]]] = {
    PDF: _extract_pdf_pages,
    DOCX: _extract_docx_pages,
    # python-docx cannot read legacy .doc; the fallback covers it
    DOC: _extract_docx_pages,
    PLAIN_TEXT: _extract_plain_text,
    IMAGE_TYPES[0]: _extract_image_text,
    IMAGE_TYPES[1]: _extract_image_text,
}

FALLBACKS: Dict[str, Callable[[bytes], List[Page]]] = {
    PDF: _raw_text_page,
    DOCX: _raw_text_page,
    DOC: _raw_text_page,
    PLAIN_TEXT: _raw_text_page,
}


def fallback_pages(data: bytes, mime_type: str) -> List[Page]:
    """Best-effort single page used when a parser fails or times out."""
    return FALLBACKS.get(mime_type, _empty_page)(data)


def extract_pages(
    data: bytes,
    mime_type: str,
    filename: Optional[str] = None,
    timeout: Optional[float] = None,
) -> List[Page]:
    """
    Extract an ordered list of pages from a document.

    Args:
        data: Raw file bytes
        mime_type: Declared MIME type from the upload layer
        filename: Original filename, used only to guess a generic MIME type
        timeout: Seconds to wait for the parser (default: EXTRACTION_TIMEOUT_SECONDS)

    Returns:
        List of Page. Never raises; failures produce a single fallback page.
    """
    mime = normalize_mime_type(mime_type, filename)
    extractor = EXTRACTORS.get(mime, _empty_page)
    if timeout is None:
        timeout = get_config().extraction_timeout_seconds

    label = filename or mime
    # The slot is returned when this call returns, even if the parser is still stuck
    with _get_slots():
        try:
            future = _start_parser(extractor, data)
        except RuntimeError as e:
            logger.warning(f"⚠️ Could not start parser for {label}: {e}; using fallback")
            return fallback_pages(data, mime)

        try:
            pages = future.result(timeout=timeout)
        except FutureTimeout:
            logger.warning(f"⚠️ Extraction of {label} exceeded {timeout}s; abandoning parser, using fallback")
            return fallback_pages(data, mime)
        except ExtractionFailure as e:
            logger.warning(f"⚠️ {e} ({label}); using fallback")
            return fallback_pages(data, mime)
        except Exception as e:
            logger.warning(f"⚠️ Unexpected extraction error for {label}: {e}; using fallback")
            return fallback_pages(data, mime)

    logger.info(f"📄 Extracted {len(pages)} page(s) from {label}")
    return pages
