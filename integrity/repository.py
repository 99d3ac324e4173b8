"""
Submission repository contract and an in-memory implementation.

All query methods return submissions in creation order (oldest first), which
is what makes "first match" in duplicate detection reproducible.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol, Union

from integrity.errors import DuplicateInsertConflict, SubmissionNotFound
from integrity.schema import SimilarSubmissionRecord, Submission
from integrity.similarity import FingerprintIndex

logger = logging.getLogger(__name__)


class SubmissionRepository(Protocol):
    """Query contract the engine relies on."""

    def find_by_assignment_and_content_hash(self, assignment_id: str, content_hash: str) -> List[Submission]:
        ...

    def find_by_assignment_and_any_page_hash(self, assignment_id: str, hashes: List[str]) -> List[Submission]:
        ...

    def insert(self, submission: Submission) -> Submission:
        """Persist a new submission. Raises DuplicateInsertConflict on a content-hash collision."""
        ...

    def get(self, submission_id: str) -> Optional[Submission]:
        ...

    def find_by_assignment(self, assignment_id: str) -> List[Submission]:
        ...

    def update_similarity(
        self, submission_id: str, records: List[SimilarSubmissionRecord], is_plagiarized: bool
    ) -> Submission:
        ...

    def update_grade(
        self, submission_id: str, grade: Optional[Union[int, float]], comment: Optional[str] = None
    ) -> Submission:
        ...


class InMemorySubmissionRepository:
    """
    Thread-safe repository kept in process memory.

    Maintains one FingerprintIndex per assignment, updated on every insert,
    and enforces the (assignment_id, content_hash) uniqueness rule like the
    database-backed store does.
    """

    def __init__(self, submissions: Iterable[Submission] = ()):
        self._lock = threading.RLock()
        self._by_id: Dict[str, Submission] = {}
        self._order: List[str] = []
        self._indexes: Dict[str, FingerprintIndex] = {}
        for submission in submissions:
            self.insert(submission)

    def _ordered(self, ids: Iterable[str]) -> List[Submission]:
        wanted = set(ids)
        return [self._by_id[i].model_copy(deep=True) for i in self._order if i in wanted]

    def _index(self, assignment_id: str) -> FingerprintIndex:
        return self._indexes.setdefault(assignment_id, FingerprintIndex())

    def find_by_assignment_and_content_hash(self, assignment_id: str, content_hash: str) -> List[Submission]:
        with self._lock:
            ids = self._index(assignment_id).submissions_with_content_hash(content_hash)
            return self._ordered(ids)

    def find_by_assignment_and_any_page_hash(self, assignment_id: str, hashes: List[str]) -> List[Submission]:
        with self._lock:
            ids = self._index(assignment_id).submissions_with_any_page_hash(hashes)
            return self._ordered(ids)

    def insert(self, submission: Submission) -> Submission:
        with self._lock:
            index = self._index(submission.assignment_id)
            for attachment in submission.attachments:
                existing = index.submissions_with_content_hash(attachment.content_hash)
                if any(other != submission.id for other in existing):
                    raise DuplicateInsertConflict(submission.assignment_id, attachment.content_hash)
            if submission.id in self._by_id:
                raise ValueError(f"Submission {submission.id} already exists")

            stored = submission.model_copy(deep=True)
            self._by_id[stored.id] = stored
            self._order.append(stored.id)
            index.add(stored)
            logger.debug(f"Inserted submission {stored.id} for assignment {stored.assignment_id}")
            return stored.model_copy(deep=True)

    def get(self, submission_id: str) -> Optional[Submission]:
        with self._lock:
            found = self._by_id.get(submission_id)
            return found.model_copy(deep=True) if found else None

    def find_by_assignment(self, assignment_id: str) -> List[Submission]:
        with self._lock:
            return [
                self._by_id[i].model_copy(deep=True)
                for i in self._order
                if self._by_id[i].assignment_id == assignment_id
            ]

    def update_similarity(
        self, submission_id: str, records: List[SimilarSubmissionRecord], is_plagiarized: bool
    ) -> Submission:
        with self._lock:
            current = self._by_id.get(submission_id)
            if current is None:
                raise SubmissionNotFound(submission_id)
            updated = current.model_copy(
                update={"similar_submissions": list(records), "is_plagiarized": is_plagiarized},
                deep=True,
            )
            self._by_id[submission_id] = updated
            return updated.model_copy(deep=True)

    def update_grade(
        self, submission_id: str, grade: Optional[Union[int, float]], comment: Optional[str] = None
    ) -> Submission:
        with self._lock:
            current = self._by_id.get(submission_id)
            if current is None:
                raise SubmissionNotFound(submission_id)
            changes = {"grade": grade}
            if comment is not None:
                changes["comment"] = comment
            updated = current.model_copy(update=changes, deep=True)
            self._by_id[submission_id] = updated
            return updated.model_copy(deep=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._order)
