"""
Redis-based job queue using RQ (Redis Queue).
Runs similarity passes outside the request that accepted the submission.
"""

import os
import urllib.parse
from typing import Any, Dict

from redis import Redis
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job

QUEUE_NAME = "similarity"


def get_redis_client() -> Redis:
    """Get Redis client connection from REDIS_URL (redis://[:password@]host[:port][/db])."""
    redis_url = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

    if redis_url.startswith(("redis://", "rediss://")):
        parsed = urllib.parse.urlparse(redis_url)
        host = parsed.hostname or "localhost"
        port = parsed.port or 6379
        db = int(parsed.path.lstrip("/")) if parsed.path.lstrip("/") else 0
        return Redis(
            host=host,
            port=port,
            db=db,
            password=parsed.password,
            ssl=parsed.scheme == "rediss",
            decode_responses=False,
        )
    return Redis(host="localhost", port=6379, db=0, decode_responses=False)


def get_queue(redis_client: Redis = None) -> Queue:
    """Get RQ queue instance."""
    return Queue(QUEUE_NAME, connection=redis_client or get_redis_client())


def enqueue_similarity_pass(submission_id: str) -> str:
    """
    Enqueue a similarity pass for an accepted submission.

    Returns:
        Job ID (string)

    Raises:
        Exception if job cannot be enqueued
    """
    try:
        from jobs.score_submission import score_submission_job

        queue = get_queue()
        job = queue.enqueue(
            score_submission_job,
            submission_id=submission_id,
            job_timeout=300,
            result_ttl=3600,  # Keep result for 1 hour
            failure_ttl=86400,  # Keep failed jobs for 24 hours
            description=f"similarity pass for {submission_id}",
        )
        return job.id
    except Exception as e:
        raise Exception(f"Failed to enqueue similarity pass: {str(e)}") from e


def get_job_status(job_id: str) -> Dict[str, Any]:
    """
    Get the status of a similarity job.

    Returns:
        dict with status, result, error, etc.
    """
    try:
        job = Job.fetch(job_id, connection=get_redis_client())

        status_map = {
            "queued": "queued",
            "started": "started",
            "finished": "finished",
            "failed": "failed",
            "deferred": "queued",
            "scheduled": "queued",
        }
        rq_status = job.get_status()
        rq_status = getattr(rq_status, "value", rq_status)
        status = status_map.get(rq_status, "unknown")

        result = {
            "job_id": job_id,
            "submission_id": (job.kwargs or {}).get("submission_id"),
            "status": status,
            "created_at": job.created_at.isoformat() if job.created_at else None,
            "started_at": job.started_at.isoformat() if job.started_at else None,
            "finished_at": job.ended_at.isoformat() if job.ended_at else None,
            "status_message": job.description or f"Job {status}",
        }

        if status == "finished" and job.result:
            result["result"] = job.result
        elif status == "failed":
            result["error"] = str(job.exc_info) if job.exc_info else "Unknown error"

        return result

    except NoSuchJobError:
        return {"job_id": job_id, "status": "not_found", "error": "Job not found"}
    except Exception as e:
        return {"job_id": job_id, "status": "error", "error": str(e)}
