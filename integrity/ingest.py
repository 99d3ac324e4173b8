"""
Ingestion storage: where accepted attachment files are kept.

Files are only handed to storage after duplicate detection passes, so a
rejected submission never leaves uploaded objects behind. LocalFileStorage
writes under an artifacts directory; SupabaseStorage (supabase_storage.py)
writes to a bucket. Both return StoredFile and support delete() for cleanup.
"""

import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol

from pydantic import BaseModel

from integrity.errors import StorageUploadFailure

logger = logging.getLogger(__name__)


class StoredFile(BaseModel):
    url: str
    path: str


class SubmissionStorage(Protocol):
    def upload(self, data: bytes, filename: str, content_type: str, assignment_id: str, student_id: str) -> StoredFile:
        """Store a file. Raises StorageUploadFailure."""
        ...

    def delete(self, paths: List[str]) -> bool:
        ...


def build_storage_path(data: bytes, filename: str, assignment_id: str, student_id: str) -> str:
    """
    Deterministic object path: assignment_id/student_id/<sha256[:12]>/original<ext>
    """
    file_id = hashlib.sha256(data).hexdigest()[:12]
    file_ext = Path(filename).suffix.lower() or ".bin"
    return f"{assignment_id}/{student_id}/{file_id}/original{file_ext}"


class LocalFileStorage:
    """Writes files and a metadata.json next to them under base_dir."""

    def __init__(self, base_dir: str = "artifacts"):
        self.base_dir = Path(base_dir)

    def upload(self, data: bytes, filename: str, content_type: str, assignment_id: str, student_id: str) -> StoredFile:
        path = build_storage_path(data, filename, assignment_id, student_id)
        target = self.base_dir / path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                f.write(data)

            metadata = {
                "original_filename": filename,
                "content_type": content_type,
                "stored_path": path,
                "byte_size": len(data),
                "sha256": hashlib.sha256(data).hexdigest(),
                "created_at": datetime.now().isoformat(),
            }
            with open(target.parent / "metadata.json", "w", encoding="utf-8") as f:
                json.dump(metadata, f, indent=2)
        except OSError as e:
            raise StorageUploadFailure(f"Failed to store {filename}: {e}") from e

        return StoredFile(url=target.resolve().as_uri(), path=path)

    def delete(self, paths: List[str]) -> bool:
        ok = True
        for path in paths:
            target = self.base_dir / path
            try:
                target.unlink(missing_ok=True)
                metadata = target.parent / "metadata.json"
                metadata.unlink(missing_ok=True)
                if target.parent.exists() and not any(target.parent.iterdir()):
                    target.parent.rmdir()
            except OSError as e:
                logger.warning(f"⚠️ Could not delete stored file {path}: {e}")
                ok = False
        return ok

    def read(self, path: str) -> Optional[bytes]:
        target = self.base_dir / path
        if not target.exists():
            return None
        return target.read_bytes()
