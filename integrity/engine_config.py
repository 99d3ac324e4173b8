"""
Environment-driven settings for the integrity engine.

Every value has a default so the engine runs without any configuration;
entry points call load_dotenv() before EngineConfig.from_env().
"""

import os
from dataclasses import dataclass
from typing import FrozenSet


ALLOWED_MIME_TYPES: FrozenSet[str] = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "image/jpeg",
    "image/png",
    "text/plain",
})


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class EngineConfig:
    """Limits and thresholds used across extraction, detection and scoring."""

    extraction_timeout_seconds: float = 20.0
    extraction_max_workers: int = 4
    max_upload_bytes: int = 5 * 1024 * 1024  # 5MB per file
    max_files_per_submission: int = 5
    plagiarism_threshold: float = 50.0  # percent of pages matched
    assignment_lock_timeout: float = 60.0
    allowed_mime_types: FrozenSet[str] = ALLOWED_MIME_TYPES

    @classmethod
    def from_env(cls) -> "EngineConfig":
        defaults = cls()
        return cls(
            extraction_timeout_seconds=_env_float("EXTRACTION_TIMEOUT_SECONDS", defaults.extraction_timeout_seconds),
            extraction_max_workers=_env_int("EXTRACTION_MAX_WORKERS", defaults.extraction_max_workers),
            max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", defaults.max_upload_bytes),
            max_files_per_submission=_env_int("MAX_FILES_PER_SUBMISSION", defaults.max_files_per_submission),
            plagiarism_threshold=_env_float("PLAGIARISM_THRESHOLD", defaults.plagiarism_threshold),
            assignment_lock_timeout=_env_float("ASSIGNMENT_LOCK_TIMEOUT", defaults.assignment_lock_timeout),
        )


def get_config() -> EngineConfig:
    """Return settings from the current environment."""
    return EngineConfig.from_env()
