"""
Supabase Storage for accepted submission attachments.
Saves files to the 'assignment-submissions' bucket.
"""

import logging
from typing import Dict, List, Optional

from storage3.exceptions import StorageApiError

from auth.supabase_client import get_supabase_client
from integrity.errors import StorageUploadFailure
from integrity.ingest import StoredFile, build_storage_path

logger = logging.getLogger(__name__)

BUCKET_NAME = "assignment-submissions"


def upload_file(
    file_bytes: bytes,
    file_path: str,
    content_type: Optional[str] = None,
    access_token: Optional[str] = None,
    supabase=None,
) -> Dict:
    """
    Upload a file to the submissions bucket.

    Returns:
        dict with:
            - success: bool
            - url: Public URL if successful
            - path: Path in bucket
            - error: Error message if failed
    """
    try:
        supabase = supabase or get_supabase_client(access_token=access_token)
        if supabase is None:
            raise RuntimeError("Supabase client is not configured")

        supabase.storage.from_(BUCKET_NAME).upload(
            path=file_path,
            file=file_bytes,
            file_options={
                "content-type": content_type or "application/octet-stream",
                "upsert": "true",
            },
        )
        url = supabase.storage.from_(BUCKET_NAME).get_public_url(file_path)
        return {"success": True, "url": url, "path": file_path}
    except Exception as e:
        logger.error(f"❌ Error uploading file to Supabase Storage: {e}")
        return {"success": False, "error": str(e), "path": file_path}


def delete_files(file_paths: List[str], access_token: Optional[str] = None, supabase=None) -> bool:
    """Delete files from the bucket. Returns True if successful or nothing to delete."""
    if not file_paths:
        return True
    try:
        supabase = supabase or get_supabase_client(access_token=access_token)
        if supabase is None:
            raise RuntimeError("Supabase client is not configured")
        supabase.storage.from_(BUCKET_NAME).remove(list(file_paths))
        return True
    except StorageApiError as e:
        logger.error(f"❌ Storage API error deleting {file_paths}: {e}")
        return False
    except Exception as e:
        logger.error(f"❌ Error deleting files from Supabase Storage: {e}")
        return False


class SupabaseStorage:
    """SubmissionStorage backed by a Supabase bucket."""

    def __init__(self, supabase=None, access_token: Optional[str] = None):
        self._supabase = supabase
        self._access_token = access_token

    def upload(self, data: bytes, filename: str, content_type: str, assignment_id: str, student_id: str) -> StoredFile:
        path = build_storage_path(data, filename, assignment_id, student_id)
        logger.info(f"⬆️ Uploading {filename} to Supabase Storage...")
        result = upload_file(
            file_bytes=data,
            file_path=path,
            content_type=content_type,
            access_token=self._access_token,
            supabase=self._supabase,
        )
        if not result["success"]:
            raise StorageUploadFailure(f"Failed to upload {filename} to Supabase Storage: {result.get('error')}")
        return StoredFile(url=result["url"], path=path)

    def delete(self, paths: List[str]) -> bool:
        return delete_files(paths, access_token=self._access_token, supabase=self._supabase)
