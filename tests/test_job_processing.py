"""
Unit tests for the similarity job and the RQ queue helpers.
"""

import os
from unittest.mock import MagicMock, patch

from integrity.repository import InMemorySubmissionRepository
from integrity.schema import Attachment, PageHash, Submission


def _submission(sid, hashes, content_hash):
    return Submission(
        id=sid,
        assignment_id="assignment-1",
        student_id=f"student-{sid}",
        attachments=[
            Attachment(
                filename="essay.pdf",
                page_hashes=[PageHash(page_number=i, hash=h) for i, h in enumerate(hashes, start=1)],
                content_hash=content_hash,
            )
        ],
    )


class TestScoreSubmissionJob:
    """Tests for score_submission_job."""

    def test_job_stores_report(self):
        from jobs.score_submission import score_submission_job

        repo = InMemorySubmissionRepository([
            _submission("alice", ["h1", "h2"], "c-alice"),
            _submission("bob", ["h1", "h3"], "c-bob"),
        ])

        with patch.dict(os.environ, {"PLAGIARISM_THRESHOLD": "50"}):
            result = score_submission_job("bob", repository=repo)

        assert result["status"] == "success"
        assert result["similar_count"] == 1
        assert result["is_plagiarized"] is True
        assert repo.get("bob").similar_submissions[0].submission_id == "alice"

    def test_missing_submission_reports_failure(self):
        from jobs.score_submission import score_submission_job

        result = score_submission_job("ghost", repository=InMemorySubmissionRepository())

        assert result["status"] == "failed"
        assert "ghost" in result["error"]


class TestQueue:
    """Tests for RQ queue helpers."""

    @patch("jobs.redis_queue.get_queue")
    def test_enqueue_similarity_pass(self, mock_get_queue):
        from jobs.redis_queue import enqueue_similarity_pass
        from jobs.score_submission import score_submission_job

        mock_get_queue.return_value.enqueue.return_value.id = "job-123"

        job_id = enqueue_similarity_pass("sub-1")

        assert job_id == "job-123"
        args, kwargs = mock_get_queue.return_value.enqueue.call_args
        assert args[0] is score_submission_job
        assert kwargs["submission_id"] == "sub-1"

    @patch("jobs.redis_queue.get_queue")
    def test_enqueue_failure_is_wrapped(self, mock_get_queue):
        from jobs.redis_queue import enqueue_similarity_pass

        mock_get_queue.side_effect = ConnectionError("refused")

        try:
            enqueue_similarity_pass("sub-1")
        except Exception as e:
            assert "Failed to enqueue similarity pass" in str(e)
        else:
            raise AssertionError("expected enqueue to fail")

    @patch.dict(os.environ, {"REDIS_URL": "rediss://:secret@cache.example.com:6380/2"})
    @patch("jobs.redis_queue.Redis")
    def test_redis_client_from_url(self, mock_redis):
        from jobs.redis_queue import get_redis_client

        get_redis_client()

        mock_redis.assert_called_once_with(
            host="cache.example.com",
            port=6380,
            db=2,
            password="secret",
            ssl=True,
            decode_responses=False,
        )

    @patch("jobs.redis_queue.get_redis_client")
    @patch("jobs.redis_queue.Job")
    def test_job_status_finished(self, mock_job_cls, mock_get_redis):
        from jobs.redis_queue import get_job_status

        job = MagicMock()
        job.get_status.return_value = "finished"
        job.result = {"status": "success"}
        job.description = "similarity pass for sub-1"
        job.kwargs = {"submission_id": "sub-1"}
        mock_job_cls.fetch.return_value = job

        status = get_job_status("job-123")

        assert status["status"] == "finished"
        assert status["result"] == {"status": "success"}
        assert status["submission_id"] == "sub-1"
