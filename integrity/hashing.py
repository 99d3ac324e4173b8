"""
Content fingerprints for pages and whole documents.

Only leading/trailing whitespace is stripped before hashing; case and inner
whitespace are significant, so equal hashes mean byte-identical trimmed text.
"""

import hashlib
from typing import Iterable, List, Optional, Tuple

from integrity.extract import extract_pages, normalize_mime_type
from integrity.schema import FingerprintedDocument, Page, PageHash


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


# Digest of a page or document with no text after trimming. It is stored like
# any other hash but never counts as evidence of copying.
EMPTY_TEXT_HASH = hashlib.sha256(b"").hexdigest()


def is_text_hash(digest: str) -> bool:
    """True if the digest came from non-empty trimmed text."""
    return digest != EMPTY_TEXT_HASH


def page_hash(text: str) -> str:
    """SHA-256 hex digest of the trimmed page text."""
    return sha256_hex(text.strip())


def content_hash(pages: Iterable[Page]) -> str:
    """
    SHA-256 hex digest of all trimmed page texts joined without a separator,
    in extraction order. Reordering pages changes the digest.
    """
    return sha256_hex("".join(p.content.strip() for p in pages))


def fingerprint_pages(pages: List[Page]) -> Tuple[List[PageHash], str]:
    """Return (page_hashes, content_hash) for an extracted page list."""
    page_hashes = [PageHash(page_number=p.page_number, hash=page_hash(p.content)) for p in pages]
    return page_hashes, content_hash(pages)


def fingerprint_document(
    data: bytes,
    mime_type: str,
    filename: str,
    timeout: Optional[float] = None,
) -> FingerprintedDocument:
    """Extract and hash one uploaded file."""
    mime = normalize_mime_type(mime_type, filename)
    pages = extract_pages(data, mime, filename=filename, timeout=timeout)
    page_hashes, doc_hash = fingerprint_pages(pages)
    return FingerprintedDocument(
        filename=filename,
        mime_type=mime,
        data=data,
        pages=pages,
        page_hashes=page_hashes,
        content_hash=doc_hash,
    )
