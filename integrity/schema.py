"""
Data models for assignment submissions and their content fingerprints.
Uses Pydantic for validation and type safety.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Union
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


class SubmissionState(str, Enum):
    """
    Stages a submission attempt moves through.
    SCORED is reached only from PERSISTED and never leads back to REJECTED.
    """
    RECEIVED = "RECEIVED"
    EXTRACTED = "EXTRACTED"
    HASHED = "HASHED"
    DUPLICATE_CHECKED = "DUPLICATE_CHECKED"
    PERSISTED = "PERSISTED"
    REJECTED = "REJECTED"
    SCORED = "SCORED"


class Page(BaseModel):
    """One page of extracted text. page_number is assigned by the extractor."""
    page_number: int = Field(ge=1)
    content: str = ""


class PageHash(BaseModel):
    page_number: int = Field(ge=1)
    hash: str


class UploadedFile(BaseModel):
    """Raw file handed over by the upload layer."""
    data: bytes
    mime_type: str
    original_filename: str


class FingerprintedDocument(BaseModel):
    """Extraction + hashing output for a single uploaded file, before storage."""
    filename: str
    mime_type: str
    data: bytes
    pages: List[Page] = []
    page_hashes: List[PageHash] = []
    content_hash: str


class Attachment(BaseModel):
    """
    A stored file of a submission.
    url and storage_path belong to the storage collaborator and are opaque here.
    """
    filename: str
    url: Optional[str] = None
    mime_type: Optional[str] = None
    storage_path: Optional[str] = None
    page_hashes: List[PageHash] = []
    content_hash: str


class MatchedPage(BaseModel):
    source_page_number: int
    target_page_number: int
    hash: str


class SimilarSubmissionRecord(BaseModel):
    """
    Overlap between an accepted submission and one other submission of the assignment.

    match_percentage is matched page pairs over the submission's total page
    count, capped at 100. It is not the duplicate detector's per-attachment
    match_percentage, which is left uncapped and can exceed 100 when one
    page matches several stored pages. matched_pages keeps every pair, so the
    uncapped ratio is len(matched_pages) / page count.
    """
    submission_id: str
    match_percentage: float = Field(ge=0.0, le=100.0)
    matched_pages: List[MatchedPage] = []
    # Number of attachment pairs whose whole-document hashes are equal
    content_matches: int = 0


class Submission(BaseModel):
    """
    Persisted submission record.
    Created only after duplicate detection passes; attachments are never rewritten.
    """
    id: str = Field(default_factory=_new_id)
    assignment_id: str
    student_id: str
    student_name: Optional[str] = None
    attachments: List[Attachment] = []
    comment: Optional[str] = None
    grade: Optional[Union[int, float]] = None
    is_plagiarized: bool = False
    similar_submissions: List[SimilarSubmissionRecord] = []
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def page_hash_count(self) -> int:
        return sum(len(a.page_hashes) for a in self.attachments)


class DuplicatePage(BaseModel):
    page_number: int
    student_name: Optional[str] = None


class OriginalSubmission(BaseModel):
    student_name: Optional[str] = None
    submission_date: datetime


class RejectionDetails(BaseModel):
    match_percentage: Optional[float] = None
    duplicate_pages: Optional[List[DuplicatePage]] = None
    original_submission: Optional[OriginalSubmission] = None


class Rejection(BaseModel):
    """Structured rejection handed to the API layer for rendering."""
    message: str
    details: RejectionDetails
