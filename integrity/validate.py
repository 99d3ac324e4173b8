"""
Upload boundary checks: file type, size and count.
Runs before extraction; failures are client-input errors.
"""

import logging
from typing import List, Optional

from integrity.engine_config import EngineConfig, get_config
from integrity.errors import FileTooLarge, TooManyFiles, UnsupportedFileType
from integrity.extract import normalize_mime_type
from integrity.schema import UploadedFile

logger = logging.getLogger(__name__)


def validate_upload(upload: UploadedFile, config: Optional[EngineConfig] = None) -> str:
    """
    Check a single file against the accepted types and size ceiling.

    Returns:
        The normalized MIME type

    Raises:
        UnsupportedFileType, FileTooLarge
    """
    config = config or get_config()
    mime = normalize_mime_type(upload.mime_type, upload.original_filename)
    if mime not in config.allowed_mime_types:
        raise UnsupportedFileType(
            "Invalid file type. Only PDF, Word, Images, and Text files are allowed.",
            filename=upload.original_filename,
        )
    if len(upload.data) > config.max_upload_bytes:
        limit_mb = config.max_upload_bytes / (1024 * 1024)
        raise FileTooLarge(
            f"File is too large. Maximum size is {limit_mb:g}MB.",
            filename=upload.original_filename,
        )
    return mime


def validate_uploads(uploads: List[UploadedFile], config: Optional[EngineConfig] = None) -> List[UploadedFile]:
    """
    Validate a whole request. Returns copies of the uploads with normalized MIME types.

    Raises:
        TooManyFiles, UnsupportedFileType, FileTooLarge
    """
    config = config or get_config()
    if len(uploads) > config.max_files_per_submission:
        raise TooManyFiles(f"Too many files. Maximum is {config.max_files_per_submission} per submission.")

    validated = []
    for upload in uploads:
        mime = validate_upload(upload, config)
        validated.append(upload.model_copy(update={"mime_type": mime}))
    logger.debug(f"Validated {len(validated)} upload(s)")
    return validated
