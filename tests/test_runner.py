"""
End-to-end tests for SubmissionService.submit(): detection gates persistence,
storage is only touched for accepted submissions, and concurrent identical
submissions cannot both be accepted.
"""

import threading
from unittest.mock import MagicMock

import pytest

from integrity.duplicates import FULL_DUPLICATE_MESSAGE, PARTIAL_DUPLICATE_MESSAGE
from integrity.engine_config import EngineConfig
from integrity.errors import (
    DuplicateInsertConflict,
    RepositoryFailure,
    StorageUploadFailure,
    UnsupportedFileType,
)
from integrity.ingest import LocalFileStorage, StoredFile
from integrity.repository import InMemorySubmissionRepository
from integrity.runner import SubmissionService
from integrity.schema import SubmissionState, UploadedFile


def _pdf_upload(data, filename="essay.pdf"):
    return UploadedFile(data=data, mime_type="application/pdf", original_filename=filename)


def _text_upload(text, filename="essay.txt"):
    return UploadedFile(data=text.encode("utf-8"), mime_type="text/plain", original_filename=filename)


@pytest.fixture
def repository():
    return InMemorySubmissionRepository()


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(base_dir=str(tmp_path / "artifacts"))


@pytest.fixture
def service(repository, storage):
    return SubmissionService(repository, storage, config=EngineConfig())


class TestFullDuplicateFlow:

    def test_second_identical_submission_is_rejected(self, service, repository, make_pdf):
        data = make_pdf(["Page1 text", "Page2 text"])

        first = service.submit("assignment-1", "s1", [_pdf_upload(data)], student_name="Alice")
        second = service.submit("assignment-1", "s2", [_pdf_upload(data)], student_name="Bob")

        assert first.accepted
        assert second.state == SubmissionState.REJECTED
        assert second.rejection.message == FULL_DUPLICATE_MESSAGE
        assert second.rejection.details.original_submission.student_name == "Alice"
        assert second.duplicate_check.filename == "essay.pdf"
        assert len(repository) == 1

    def test_same_content_in_other_assignment_is_accepted(self, service, repository, make_pdf):
        data = make_pdf(["Page1 text", "Page2 text"])

        assert service.submit("assignment-1", "s1", [_pdf_upload(data)]).accepted
        assert service.submit("assignment-2", "s2", [_pdf_upload(data)]).accepted
        assert len(repository) == 2


class TestPartialDuplicateFlow:

    def test_one_shared_page_rejects_at_fifty_percent(self, service, repository, make_pdf):
        service.submit("assignment-1", "s1", [_pdf_upload(make_pdf(["Page1 text", "Page2 text"]))],
                       student_name="Alice")

        outcome = service.submit("assignment-1", "s2", [_pdf_upload(make_pdf(["Page1 text", "Different page"]))])

        assert outcome.state == SubmissionState.REJECTED
        assert outcome.rejection.message == PARTIAL_DUPLICATE_MESSAGE
        assert len(outcome.rejection.details.duplicate_pages) == 1
        assert outcome.rejection.details.duplicate_pages[0].student_name == "Alice"
        assert outcome.rejection.details.match_percentage == 50
        assert len(repository) == 1

    def test_disjoint_submissions_both_persist(self, service, repository, make_pdf):
        a = service.submit("assignment-1", "s1", [_pdf_upload(make_pdf(["Alpha one", "Alpha two"]))])
        b = service.submit("assignment-1", "s2", [_pdf_upload(make_pdf(["Beta one", "Beta two"]))])

        assert a.accepted and b.accepted
        assert len(repository) == 2
        assert b.processing_report["stages"]["duplicate_check"]["is_duplicate"] is False


class TestTextLessUploads:
    """Uploads with no extractable text persist side by side."""

    def test_two_unreadable_images_both_persist(self, service, repository):
        a = UploadedFile(data=b"\x89PNG scan one", mime_type="image/png", original_filename="one.png")
        b = UploadedFile(data=b"\x89PNG scan two", mime_type="image/png", original_filename="two.png")

        first = service.submit("assignment-1", "s1", [a])
        second = service.submit("assignment-1", "s2", [b])

        assert first.accepted
        assert second.accepted
        assert second.submission.attachments[0].page_hashes[0].page_number == 1
        assert len(repository) == 2

    def test_word_files_sharing_only_a_blank_page_both_persist(self, service, repository, make_docx):
        docx_type = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
        a = UploadedFile(data=make_docx([["Alpha essay"], []]), mime_type=docx_type, original_filename="a.docx")
        b = UploadedFile(data=make_docx([["Beta essay"], []]), mime_type=docx_type, original_filename="b.docx")

        first = service.submit("assignment-1", "s1", [a])
        second = service.submit("assignment-1", "s2", [b])

        assert first.accepted
        assert second.accepted
        # The blank segment is still stored as a page
        assert len(second.submission.attachments[0].page_hashes) == 2


class TestStorage:

    def test_accepted_submission_stores_files(self, service, storage, make_pdf):
        data = make_pdf(["Page1 text"])
        outcome = service.submit("assignment-1", "s1", [_pdf_upload(data)])

        attachment = outcome.submission.attachments[0]
        assert attachment.storage_path.startswith("assignment-1/s1/")
        assert attachment.mime_type == "application/pdf"
        assert storage.read(attachment.storage_path) == data

    def test_rejected_submission_uploads_nothing(self, repository, make_pdf):
        storage = MagicMock()
        storage.upload.return_value = StoredFile(url="mem://a", path="a/s1/x/original.pdf")
        service = SubmissionService(repository, storage, config=EngineConfig())
        data = make_pdf(["Page1 text", "Page2 text"])

        service.submit("assignment-1", "s1", [_pdf_upload(data)])
        storage.upload.reset_mock()
        outcome = service.submit("assignment-1", "s2", [_pdf_upload(data)])

        assert outcome.state == SubmissionState.REJECTED
        storage.upload.assert_not_called()

    def test_upload_failure_cleans_up_and_persists_nothing(self, repository):
        storage = MagicMock()
        storage.upload.side_effect = [
            StoredFile(url="mem://one", path="assignment-1/s1/one/original.txt"),
            StorageUploadFailure("bucket unavailable"),
        ]
        storage.delete.return_value = True
        service = SubmissionService(repository, storage, config=EngineConfig())

        with pytest.raises(StorageUploadFailure):
            service.submit("assignment-1", "s1", [_text_upload("first", "one.txt"), _text_upload("second", "two.txt")])

        storage.delete.assert_called_once_with(["assignment-1/s1/one/original.txt"])
        assert len(repository) == 0


class TestInsertFailures:

    def _stale_repository(self):
        repo = MagicMock()
        repo.find_by_assignment_and_content_hash.return_value = []
        repo.find_by_assignment_and_any_page_hash.return_value = []
        return repo

    def test_insert_conflict_becomes_rejection(self):
        repo = self._stale_repository()
        repo.insert.side_effect = DuplicateInsertConflict("assignment-1", "abc")
        storage = MagicMock()
        storage.upload.return_value = StoredFile(url="mem://x", path="assignment-1/s1/x/original.txt")
        service = SubmissionService(repo, storage, config=EngineConfig())

        outcome = service.submit("assignment-1", "s1", [_text_upload("essay body")])

        assert outcome.state == SubmissionState.REJECTED
        assert outcome.rejection.message == FULL_DUPLICATE_MESSAGE
        storage.delete.assert_called_once_with(["assignment-1/s1/x/original.txt"])

    def test_unexpected_insert_error_is_wrapped(self):
        repo = self._stale_repository()
        repo.insert.side_effect = ConnectionError("connection reset by 10.0.0.3")
        storage = MagicMock()
        storage.upload.return_value = StoredFile(url="mem://x", path="assignment-1/s1/x/original.txt")
        service = SubmissionService(repo, storage, config=EngineConfig())

        with pytest.raises(RepositoryFailure) as exc_info:
            service.submit("assignment-1", "s1", [_text_upload("essay body")])

        assert "10.0.0.3" not in str(exc_info.value)
        storage.delete.assert_called_once()


class TestValidation:

    def test_unsupported_type_rejected_before_anything_runs(self, repository):
        storage = MagicMock()
        service = SubmissionService(repository, storage, config=EngineConfig())
        upload = UploadedFile(data=b"MZ", mime_type="application/x-msdownload", original_filename="tool.exe")

        with pytest.raises(UnsupportedFileType):
            service.submit("assignment-1", "s1", [upload])

        storage.upload.assert_not_called()
        assert len(repository) == 0


class TestScoringHandoff:

    def test_scheduler_receives_submission_id(self, repository, storage):
        scheduled = []
        service = SubmissionService(repository, storage, config=EngineConfig(), schedule_scoring=scheduled.append)

        outcome = service.submit("assignment-1", "s1", [_text_upload("essay body")])

        assert scheduled == [outcome.submission.id]

    def test_scheduler_failure_does_not_reject(self, repository, storage):
        def _broken(submission_id):
            raise ConnectionError("redis down")

        service = SubmissionService(repository, storage, config=EngineConfig(), schedule_scoring=_broken)

        outcome = service.submit("assignment-1", "s1", [_text_upload("essay body")])

        assert outcome.accepted
        assert len(repository) == 1

    def test_score_then_grade(self, service, repository):
        first = service.submit("assignment-1", "s1", [_text_upload("first essay")]).submission
        service.submit("assignment-1", "s2", [_text_upload("second essay")])

        scored = service.score(first.id)
        assert scored.similar_submissions == []
        assert scored.is_plagiarized is False

        graded = service.grade(first.id, 87, "Well argued")
        assert graded.grade == 87
        assert graded.comment == "Well argued"
        assert repository.get(first.id).grade == 87


class TestConcurrency:

    def test_identical_concurrent_submissions_accept_exactly_one(self, repository, storage):
        service = SubmissionService(repository, storage, config=EngineConfig())
        upload = _text_upload("the very same essay")
        barrier = threading.Barrier(4)
        outcomes = []
        outcomes_lock = threading.Lock()

        def _submit(student):
            barrier.wait()
            outcome = service.submit("assignment-1", student, [upload])
            with outcomes_lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=_submit, args=(f"s{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(outcomes) == 4
        assert sum(1 for o in outcomes if o.accepted) == 1
        assert sum(1 for o in outcomes if o.state == SubmissionState.REJECTED) == 3
        assert len(repository) == 1
