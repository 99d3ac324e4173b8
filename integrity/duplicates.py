"""
Duplicate detection: the gate every submission passes before it is persisted.

Two checks, scoped to one assignment:
  1. Full duplicate  - an existing attachment has the same content hash
  2. Partial duplicate - existing pages share hashes with the new pages

Hashes of empty text (a blank page, an image OCR could not read) are
never matched. Outcomes are returned as DuplicateCheckResult values. Only
repository failures raise.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel

from integrity.errors import RepositoryFailure
from integrity.hashing import is_text_hash
from integrity.schema import (
    DuplicatePage,
    FingerprintedDocument,
    OriginalSubmission,
    PageHash,
    Rejection,
    RejectionDetails,
    Submission,
)

logger = logging.getLogger(__name__)

FULL_DUPLICATE_MESSAGE = "Duplicate assignment detected"
PARTIAL_DUPLICATE_MESSAGE = "Partial plagiarism detected"


class DuplicateCheckResult(BaseModel):
    is_duplicate: bool = False
    partial_match: bool = False
    filename: Optional[str] = None
    original_submission: Optional[Submission] = None
    duplicate_pages: List[DuplicatePage] = []
    # Uncapped: one new page matching several stored pages counts each match
    match_percentage: Optional[float] = None

    def to_rejection(self) -> Optional[Rejection]:
        """Render the payload the API layer returns on rejection (None if not a duplicate)."""
        if not self.is_duplicate:
            return None
        if self.partial_match:
            return Rejection(
                message=PARTIAL_DUPLICATE_MESSAGE,
                details=RejectionDetails(
                    match_percentage=self.match_percentage,
                    duplicate_pages=self.duplicate_pages,
                ),
            )
        details = RejectionDetails()
        original = self.original_submission
        if original is not None:
            details.original_submission = OriginalSubmission(
                student_name=original.student_name,
                submission_date=original.created_at,
            )
        return Rejection(message=FULL_DUPLICATE_MESSAGE, details=details)


def _query(label: str, fn, *args):
    try:
        return fn(*args)
    except RepositoryFailure:
        raise
    except Exception as e:
        logger.error(f"❌ Repository query failed during {label}: {e}")
        raise RepositoryFailure() from e


def check_full_duplicate(repository, assignment_id: str, content_hash: str) -> DuplicateCheckResult:
    # A document with no text says nothing about who wrote it
    if not is_text_hash(content_hash):
        return DuplicateCheckResult()
    matches = _query(
        "full-duplicate check",
        repository.find_by_assignment_and_content_hash,
        assignment_id,
        content_hash,
    )
    if not matches:
        return DuplicateCheckResult()
    # Repository returns creation order: the oldest match is the original
    return DuplicateCheckResult(is_duplicate=True, original_submission=matches[0])


def check_partial_duplicate(repository, assignment_id: str, page_hashes: List[PageHash]) -> DuplicateCheckResult:
    new_hashes = {ph.hash for ph in page_hashes if is_text_hash(ph.hash)}
    if not new_hashes:
        return DuplicateCheckResult()

    candidates = _query(
        "partial-duplicate check",
        repository.find_by_assignment_and_any_page_hash,
        assignment_id,
        sorted(new_hashes),
    )

    # Many-to-many: every existing page matching any new page is reported
    duplicate_pages = []
    for submission in candidates:
        for attachment in submission.attachments:
            for ph in attachment.page_hashes:
                if ph.hash in new_hashes:
                    duplicate_pages.append(
                        DuplicatePage(page_number=ph.page_number, student_name=submission.student_name)
                    )

    if not duplicate_pages:
        return DuplicateCheckResult()

    return DuplicateCheckResult(
        is_duplicate=True,
        partial_match=True,
        duplicate_pages=duplicate_pages,
        match_percentage=len(duplicate_pages) / len(page_hashes) * 100,
    )


def check_duplicate(
    repository,
    assignment_id: str,
    page_hashes: List[PageHash],
    content_hash: str,
) -> DuplicateCheckResult:
    """
    Run the full-duplicate check, then the partial check if the first found nothing.

    Args:
        repository: SubmissionRepository to query
        assignment_id: Assignment scope
        page_hashes: Page hashes of the new attachment
        content_hash: Whole-document hash of the new attachment

    Returns:
        DuplicateCheckResult (is_duplicate=False means the caller may persist)
    """
    result = check_full_duplicate(repository, assignment_id, content_hash)
    if result.is_duplicate:
        return result
    return check_partial_duplicate(repository, assignment_id, page_hashes)


def check_documents(repository, assignment_id: str, documents: List[FingerprintedDocument]) -> DuplicateCheckResult:
    """
    Check every attachment of a submission attempt.

    Full-duplicate checks run for all attachments first; partial checks only
    run when no attachment is a full duplicate. The first hit wins.
    """
    for doc in documents:
        result = check_full_duplicate(repository, assignment_id, doc.content_hash)
        if result.is_duplicate:
            original = result.original_submission
            logger.info(
                f"🚫 {doc.filename} duplicates submission {original.id} "
                f"in assignment {assignment_id}"
            )
            return result.model_copy(update={"filename": doc.filename})

    for doc in documents:
        result = check_partial_duplicate(repository, assignment_id, doc.page_hashes)
        if result.is_duplicate:
            logger.info(
                f"🚫 {doc.filename} shares {len(result.duplicate_pages)} page(s) with existing "
                f"submissions in assignment {assignment_id} ({result.match_percentage:.1f}%)"
            )
            return result.model_copy(update={"filename": doc.filename})

    return DuplicateCheckResult()
