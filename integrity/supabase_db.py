"""
Supabase PostgreSQL repository for submissions.

Tables (see migrations/001_submission_integrity.sql):
  - submissions: one row per submission; attachments and similar_submissions
    are JSON, page_hashes / content_hashes are text[] copies used for lookups
  - submission_attachments: (submission_id, assignment_id, content_hash) with a
    unique constraint on (assignment_id, content_hash). Inserting here first
    turns a check-then-persist race into a detectable conflict.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from postgrest.exceptions import APIError

from auth.supabase_client import get_service_client
from integrity.errors import DuplicateInsertConflict, RepositoryFailure, SubmissionNotFound
from integrity.hashing import is_text_hash
from integrity.schema import SimilarSubmissionRecord, Submission

logger = logging.getLogger(__name__)

SUBMISSIONS_TABLE = "submissions"
ATTACHMENTS_TABLE = "submission_attachments"
UNIQUE_VIOLATION = "23505"


def _claimable_content_hashes(submission: Submission) -> List[str]:
    return list(dict.fromkeys(a.content_hash for a in submission.attachments if is_text_hash(a.content_hash)))


def submission_to_row(submission: Submission) -> Dict[str, Any]:
    row = submission.model_dump(mode="json")
    # Lookup columns leave out empty-text hashes so blank pages never match
    row["page_hashes"] = sorted({
        ph.hash for a in submission.attachments for ph in a.page_hashes if is_text_hash(ph.hash)
    })
    row["content_hashes"] = _claimable_content_hashes(submission)
    return row


def row_to_submission(row: Dict[str, Any]) -> Submission:
    # Lookup columns (page_hashes, content_hashes) are ignored by the model
    return Submission.model_validate(row)


class SupabaseSubmissionRepository:
    """SubmissionRepository backed by PostgREST."""

    def __init__(self, supabase=None):
        self._supabase = supabase

    @property
    def client(self):
        if self._supabase is None:
            self._supabase = get_service_client()
            if self._supabase is None:
                raise RepositoryFailure("Submission store is not configured")
        return self._supabase

    def _fetch(self, label: str, query) -> List[Submission]:
        try:
            result = query.order("created_at", desc=False).execute()
        except Exception as e:
            logger.error(f"❌ Error executing {label} query: {e}")
            raise RepositoryFailure() from e
        return [row_to_submission(row) for row in (result.data or [])]

    def find_by_assignment_and_content_hash(self, assignment_id: str, content_hash: str) -> List[Submission]:
        query = (
            self.client.table(SUBMISSIONS_TABLE)
            .select("*")
            .eq("assignment_id", assignment_id)
            .contains("content_hashes", [content_hash])
        )
        return self._fetch("content hash", query)

    def find_by_assignment_and_any_page_hash(self, assignment_id: str, hashes: List[str]) -> List[Submission]:
        if not hashes:
            return []
        query = (
            self.client.table(SUBMISSIONS_TABLE)
            .select("*")
            .eq("assignment_id", assignment_id)
            .overlaps("page_hashes", list(hashes))
        )
        return self._fetch("page hash", query)

    def find_by_assignment(self, assignment_id: str) -> List[Submission]:
        query = self.client.table(SUBMISSIONS_TABLE).select("*").eq("assignment_id", assignment_id)
        return self._fetch("assignment", query)

    def get(self, submission_id: str) -> Optional[Submission]:
        try:
            result = (
                self.client.table(SUBMISSIONS_TABLE)
                .select("*")
                .eq("id", submission_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"❌ Error loading submission {submission_id}: {e}")
            raise RepositoryFailure() from e
        if not result.data:
            return None
        return row_to_submission(result.data[0])

    def _claim_content_hashes(self, submission: Submission) -> None:
        hashes = _claimable_content_hashes(submission)
        if not hashes:
            return
        rows = [
            {"submission_id": submission.id, "assignment_id": submission.assignment_id, "content_hash": h}
            for h in hashes
        ]
        try:
            self.client.table(ATTACHMENTS_TABLE).insert(rows).execute()
        except APIError as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                logger.info(f"🔁 Content hash already claimed in assignment {submission.assignment_id}")
                raise DuplicateInsertConflict(submission.assignment_id, hashes[0]) from e
            logger.error(f"❌ Error claiming content hashes for {submission.id}: {e}")
            raise RepositoryFailure() from e
        except Exception as e:
            logger.error(f"❌ Error claiming content hashes for {submission.id}: {e}")
            raise RepositoryFailure() from e

    def _release_content_hashes(self, submission_id: str) -> None:
        try:
            self.client.table(ATTACHMENTS_TABLE).delete().eq("submission_id", submission_id).execute()
        except Exception as e:
            logger.error(f"❌ Could not release content hashes for {submission_id}: {e}")

    def insert(self, submission: Submission) -> Submission:
        self._claim_content_hashes(submission)
        try:
            result = self.client.table(SUBMISSIONS_TABLE).insert(submission_to_row(submission)).execute()
        except Exception as e:
            logger.error(f"❌ Error saving submission {submission.id}: {e}")
            self._release_content_hashes(submission.id)
            raise RepositoryFailure() from e

        logger.info(f"✅ Saved submission {submission.id} to Supabase database")
        if result.data:
            return row_to_submission(result.data[0])
        return submission

    def _update(self, submission_id: str, changes: Dict[str, Any]) -> Submission:
        try:
            result = (
                self.client.table(SUBMISSIONS_TABLE)
                .update(changes)
                .eq("id", submission_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"❌ Error updating submission {submission_id}: {e}")
            raise RepositoryFailure() from e
        if not result.data:
            raise SubmissionNotFound(submission_id)
        return row_to_submission(result.data[0])

    def update_similarity(
        self, submission_id: str, records: List[SimilarSubmissionRecord], is_plagiarized: bool
    ) -> Submission:
        return self._update(
            submission_id,
            {
                "similar_submissions": [r.model_dump(mode="json") for r in records],
                "is_plagiarized": is_plagiarized,
            },
        )

    def update_grade(
        self, submission_id: str, grade: Optional[Union[int, float]], comment: Optional[str] = None
    ) -> Submission:
        changes: Dict[str, Any] = {"grade": grade}
        if comment is not None:
            changes["comment"] = comment
        return self._update(submission_id, changes)
