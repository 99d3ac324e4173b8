"""
Background job for the similarity pass of a single accepted submission.
This runs in a worker process, separate from the request that accepted it.
"""

import logging
import time

from integrity.errors import IntegrityEngineError
from integrity.similarity import run_similarity_pass
from integrity.supabase_db import SupabaseSubmissionRepository

logger = logging.getLogger(__name__)


def score_submission_job(submission_id: str, repository=None) -> dict:
    """
    Score a submission against its assignment and store the report.

    Args:
        submission_id: Submission to score
        repository: Optional repository (defaults to Supabase with the service role key)

    Returns:
        dict with status and result/error
    """
    started = time.perf_counter()
    if repository is None:
        repository = SupabaseSubmissionRepository()
    logger.info(f"📄 Similarity job started for submission {submission_id}")
    try:
        submission = run_similarity_pass(repository, submission_id)
    except IntegrityEngineError as e:
        logger.error(f"❌ Similarity job failed for {submission_id}: {e}")
        return {"status": "failed", "submission_id": submission_id, "error": str(e)}

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    logger.info(f"✅ Similarity job finished for {submission_id} in {elapsed_ms}ms")
    return {
        "status": "success",
        "submission_id": submission_id,
        "similar_count": len(submission.similar_submissions),
        "is_plagiarized": submission.is_plagiarized,
        "processing_ms": elapsed_ms,
    }
