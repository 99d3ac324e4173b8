"""
Submission integrity engine: page extraction, content fingerprints,
duplicate detection and similarity scoring for assignment submissions.
"""

from integrity.hashing import content_hash, fingerprint_document, page_hash
from integrity.runner import SubmissionService, SubmitOutcome

__all__ = [
    "content_hash",
    "fingerprint_document",
    "page_hash",
    "SubmissionService",
    "SubmitOutcome",
]
