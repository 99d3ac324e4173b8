"""
Error taxonomy for the submission integrity engine.

Duplicate and partial-duplicate outcomes are NOT errors: they are returned as
values (see integrity.duplicates.DuplicateCheckResult). Only input rejection,
storage failures and repository failures propagate to the request layer.
"""


class IntegrityEngineError(RuntimeError):
    """Base error for the integrity engine."""


class ExtractionFailure(IntegrityEngineError):
    """Raised inside the extractor when a parser fails or times out. Never leaves extract_pages()."""


class UploadRejected(IntegrityEngineError):
    """Client-input error raised before extraction runs."""

    def __init__(self, message: str, filename: str = None):
        super().__init__(message)
        self.filename = filename


class UnsupportedFileType(UploadRejected):
    pass


class FileTooLarge(UploadRejected):
    pass


class TooManyFiles(UploadRejected):
    pass


class StorageUploadFailure(IntegrityEngineError):
    """Remote storage rejected an upload. The submission attempt is aborted."""


class RepositoryFailure(IntegrityEngineError):
    """
    Persistence failed. The message is safe to show to clients and never
    includes query details; the underlying exception is chained.
    """

    def __init__(self, message: str = "Submission store unavailable"):
        super().__init__(message)


class DuplicateInsertConflict(RepositoryFailure):
    """Insert hit the (assignment_id, content_hash) uniqueness constraint."""

    def __init__(self, assignment_id: str, content_hash: str):
        super().__init__("Submission with identical content already exists")
        self.assignment_id = assignment_id
        self.content_hash = content_hash


class AssignmentBusy(IntegrityEngineError):
    """The per-assignment lock could not be acquired in time."""

    def __init__(self, assignment_id: str):
        super().__init__(f"Assignment {assignment_id} is busy; try again")
        self.assignment_id = assignment_id


class SubmissionNotFound(IntegrityEngineError):
    def __init__(self, submission_id: str):
        super().__init__(f"Submission {submission_id} not found")
        self.submission_id = submission_id
