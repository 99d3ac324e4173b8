"""
Submission runner: orchestrates a submit attempt end to end.

RECEIVED -> EXTRACTED -> HASHED -> DUPLICATE_CHECKED -> PERSISTED | REJECTED

Extraction and hashing run in parallel across attachments. Duplicate
detection, storage upload and insert run under the assignment lock, in that
order, so rejected attempts never upload anything. Similarity scoring is
handed to schedule_scoring after the lock is released and can never turn an
accepted submission into a rejected one.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Union

from pydantic import BaseModel

from integrity.duplicates import DuplicateCheckResult, check_documents
from integrity.engine_config import EngineConfig, get_config
from integrity.errors import (
    DuplicateInsertConflict,
    IntegrityEngineError,
    RepositoryFailure,
    StorageUploadFailure,
    SubmissionNotFound,
)
from integrity.hashing import fingerprint_document
from integrity.ingest import SubmissionStorage
from integrity.locks import AssignmentLocks, LocalAssignmentLocks
from integrity.schema import (
    Attachment,
    FingerprintedDocument,
    Rejection,
    Submission,
    SubmissionState,
    UploadedFile,
)
from integrity.similarity import run_similarity_pass
from integrity.validate import validate_uploads

logger = logging.getLogger(__name__)


class SubmitOutcome(BaseModel):
    state: SubmissionState
    submission: Optional[Submission] = None
    rejection: Optional[Rejection] = None
    duplicate_check: Optional[DuplicateCheckResult] = None
    processing_report: dict = {}

    @property
    def accepted(self) -> bool:
        return self.state == SubmissionState.PERSISTED


class SubmissionService:
    """
    Entry point used by the request layer.

    Args:
        repository: SubmissionRepository implementation
        storage: SubmissionStorage implementation
        locks: AssignmentLocks (defaults to in-process locks)
        config: EngineConfig (defaults to environment)
        schedule_scoring: callable taking a submission id, e.g.
            jobs.redis_queue.enqueue_similarity_pass. None disables scoring.
    """

    def __init__(
        self,
        repository,
        storage: SubmissionStorage,
        locks: Optional[AssignmentLocks] = None,
        config: Optional[EngineConfig] = None,
        schedule_scoring: Optional[Callable[[str], object]] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.config = config or get_config()
        if locks is None:
            locks = LocalAssignmentLocks(timeout=self.config.assignment_lock_timeout)
        self.locks = locks
        self.schedule_scoring = schedule_scoring

    def fingerprint(self, uploads: List[UploadedFile]) -> List[FingerprintedDocument]:
        """Extract and hash every upload, in parallel, preserving upload order."""
        if not uploads:
            return []
        timeout = self.config.extraction_timeout_seconds
        with ThreadPoolExecutor(max_workers=len(uploads), thread_name_prefix="fingerprint") as executor:
            return list(executor.map(
                lambda u: fingerprint_document(u.data, u.mime_type, u.original_filename, timeout=timeout),
                uploads,
            ))

    def _cleanup(self, paths: List[str]) -> None:
        if not paths:
            return
        if self.storage.delete(paths):
            logger.info(f"🧹 Removed {len(paths)} uploaded file(s) after aborted submission")
        else:
            logger.error(f"❌ Could not remove uploaded files {paths}; they are orphaned")

    def _upload_all(self, documents: List[FingerprintedDocument], assignment_id: str, student_id: str) -> List[Attachment]:
        attachments = []
        uploaded_paths = []
        try:
            for doc in documents:
                stored = self.storage.upload(doc.data, doc.filename, doc.mime_type, assignment_id, student_id)
                uploaded_paths.append(stored.path)
                attachments.append(Attachment(
                    filename=doc.filename,
                    url=stored.url,
                    mime_type=doc.mime_type,
                    storage_path=stored.path,
                    page_hashes=doc.page_hashes,
                    content_hash=doc.content_hash,
                ))
        except StorageUploadFailure:
            self._cleanup(uploaded_paths)
            raise
        except Exception as e:
            self._cleanup(uploaded_paths)
            raise StorageUploadFailure(f"Error uploading file: {e}") from e
        return attachments

    def _rejected(self, result: DuplicateCheckResult, report: dict) -> SubmitOutcome:
        report["state"] = SubmissionState.REJECTED.value
        return SubmitOutcome(
            state=SubmissionState.REJECTED,
            rejection=result.to_rejection(),
            duplicate_check=result,
            processing_report=report,
        )

    def submit(
        self,
        assignment_id: str,
        student_id: str,
        uploads: List[UploadedFile],
        comment: Optional[str] = None,
        student_name: Optional[str] = None,
    ) -> SubmitOutcome:
        """
        Run a submission attempt.

        Returns:
            SubmitOutcome with state PERSISTED (submission set) or REJECTED
            (rejection + duplicate_check set)

        Raises:
            UploadRejected: bad file type, size or count
            AssignmentBusy: the assignment lock timed out
            StorageUploadFailure: storage failed; nothing was persisted
            RepositoryFailure: the submission store failed
        """
        report = {"stages": {}, "state": SubmissionState.RECEIVED.value}
        started = time.perf_counter()
        uploads = validate_uploads(uploads, self.config)
        logger.info(f"📄 Submission received: assignment={assignment_id} student={student_id} files={len(uploads)}")

        documents = self.fingerprint(uploads)
        report["stages"]["extraction"] = {
            doc.filename: {"pages": len(doc.pages), "mime_type": doc.mime_type} for doc in documents
        }
        report["stages"]["hashing"] = {doc.filename: doc.content_hash for doc in documents}
        report["state"] = SubmissionState.HASHED.value

        with self.locks.hold(assignment_id):
            result = check_documents(self.repository, assignment_id, documents)
            report["stages"]["duplicate_check"] = {
                "is_duplicate": result.is_duplicate,
                "partial_match": result.partial_match,
                "filename": result.filename,
            }
            report["state"] = SubmissionState.DUPLICATE_CHECKED.value
            if result.is_duplicate:
                return self._rejected(result, report)

            attachments = self._upload_all(documents, assignment_id, student_id)
            submission = Submission(
                assignment_id=assignment_id,
                student_id=student_id,
                student_name=student_name,
                attachments=attachments,
                comment=comment,
            )
            stored_paths = [a.storage_path for a in attachments if a.storage_path]
            try:
                submission = self.repository.insert(submission)
            except DuplicateInsertConflict:
                self._cleanup(stored_paths)
                logger.warning(f"⚠️ Insert conflict for assignment {assignment_id}; re-running duplicate check")
                result = check_documents(self.repository, assignment_id, documents)
                if not result.is_duplicate:
                    result = DuplicateCheckResult(is_duplicate=True)
                return self._rejected(result, report)
            except IntegrityEngineError:
                self._cleanup(stored_paths)
                raise
            except Exception as e:
                self._cleanup(stored_paths)
                logger.error(f"❌ Error saving submission for assignment {assignment_id}: {e}")
                raise RepositoryFailure() from e

        report["state"] = SubmissionState.PERSISTED.value
        report["elapsed_ms"] = round((time.perf_counter() - started) * 1000, 2)
        logger.info(f"✅ Submission {submission.id} persisted for assignment {assignment_id}")

        if self.schedule_scoring is not None:
            try:
                self.schedule_scoring(submission.id)
            except Exception as e:
                logger.warning(f"⚠️ Could not schedule similarity pass for {submission.id}: {e}")

        return SubmitOutcome(state=SubmissionState.PERSISTED, submission=submission, processing_report=report)

    def score(self, submission_id: str) -> Submission:
        """Run the similarity pass synchronously."""
        return run_similarity_pass(self.repository, submission_id, self.config)

    def grade(self, submission_id: str, grade: Optional[Union[int, float]], comment: Optional[str] = None) -> Submission:
        submission = self.repository.update_grade(submission_id, grade, comment)
        if submission is None:
            raise SubmissionNotFound(submission_id)
        logger.info(f"📝 Graded submission {submission_id}: {grade}")
        return submission
