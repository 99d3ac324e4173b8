"""
Similarity scoring: post-acceptance comparison of a submission against the
rest of its assignment.

Matches are counted exactly as a full nested comparison would count them
(new attachment x existing attachment x new page x existing page), but the
lookups go through a FingerprintIndex keyed by hash, so each new page costs
one dictionary lookup instead of a scan of the corpus.
"""

import logging
from collections import OrderedDict, defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from integrity.engine_config import EngineConfig, get_config
from integrity.errors import SubmissionNotFound
from integrity.hashing import is_text_hash
from integrity.schema import MatchedPage, SimilarSubmissionRecord, Submission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PagePosting:
    """One occurrence of a page hash inside a stored submission."""
    submission_id: str
    attachment_index: int
    page_number: int


class FingerprintIndex:
    """
    Hash -> occurrences map for a set of submissions, built incrementally.

    Postings keep insertion order, so feeding submissions in creation order
    keeps every lookup in creation order too. Empty-text hashes are not indexed.
    """

    def __init__(self):
        self._pages: Dict[str, List[PagePosting]] = defaultdict(list)
        self._contents: Dict[str, List[str]] = defaultdict(list)
        self._submission_ids: Set[str] = set()

    @classmethod
    def from_submissions(cls, submissions: Iterable[Submission]) -> "FingerprintIndex":
        index = cls()
        for submission in submissions:
            index.add(submission)
        return index

    def add(self, submission: Submission) -> None:
        if submission.id in self._submission_ids:
            return
        self._submission_ids.add(submission.id)
        for att_idx, attachment in enumerate(submission.attachments):
            if is_text_hash(attachment.content_hash):
                self._contents[attachment.content_hash].append(submission.id)
            for ph in attachment.page_hashes:
                if not is_text_hash(ph.hash):
                    continue
                self._pages[ph.hash].append(
                    PagePosting(submission_id=submission.id, attachment_index=att_idx, page_number=ph.page_number)
                )

    def __contains__(self, submission_id: str) -> bool:
        return submission_id in self._submission_ids

    def __len__(self) -> int:
        return len(self._submission_ids)

    def page_postings(self, page_hash: str) -> List[PagePosting]:
        return list(self._pages.get(page_hash, ()))

    def content_postings(self, content_hash: str) -> List[str]:
        """Submission id per matching attachment (an id repeats if several attachments match)."""
        return list(self._contents.get(content_hash, ()))

    def submissions_with_content_hash(self, content_hash: str) -> List[str]:
        return list(OrderedDict.fromkeys(self._contents.get(content_hash, ())))

    def submissions_with_any_page_hash(self, hashes: Iterable[str]) -> Set[str]:
        found = set()
        for h in hashes:
            for posting in self._pages.get(h, ()):
                found.add(posting.submission_id)
        return found


def score_submission(submission: Submission, index: FingerprintIndex) -> List[SimilarSubmissionRecord]:
    """
    Compare a submission against every other submission in the index.

    Returns:
        One record per overlapping submission, highest match_percentage first.
        The submission itself is ignored if it is present in the index.
    """
    total_pages = submission.page_hash_count
    matched: Dict[str, List[MatchedPage]] = OrderedDict()
    content_matches: Dict[str, int] = defaultdict(int)

    for attachment in submission.attachments:
        for other_id in index.content_postings(attachment.content_hash):
            if other_id != submission.id:
                content_matches[other_id] += 1
                matched.setdefault(other_id, [])

        for ph in attachment.page_hashes:
            for posting in index.page_postings(ph.hash):
                if posting.submission_id == submission.id:
                    continue
                matched.setdefault(posting.submission_id, []).append(
                    MatchedPage(
                        source_page_number=ph.page_number,
                        target_page_number=posting.page_number,
                        hash=ph.hash,
                    )
                )

    records = []
    for other_id, pages in matched.items():
        percentage = (len(pages) / total_pages * 100) if total_pages else 0.0
        records.append(
            SimilarSubmissionRecord(
                submission_id=other_id,
                # many-to-many matches can exceed the page count
                match_percentage=min(percentage, 100.0),
                matched_pages=pages,
                content_matches=content_matches.get(other_id, 0),
            )
        )

    records.sort(key=lambda r: (-r.match_percentage, r.submission_id))
    return records


def is_plagiarized(records: List[SimilarSubmissionRecord], threshold: float) -> bool:
    """A submission is flagged when any other submission matches it as a whole or above threshold."""
    return any(r.content_matches > 0 or r.match_percentage >= threshold for r in records)


def score_against_corpus(
    submission: Submission,
    corpus: Iterable[Submission],
    threshold: Optional[float] = None,
) -> Tuple[List[SimilarSubmissionRecord], bool]:
    """Build an index over the corpus (minus the submission) and score against it."""
    if threshold is None:
        threshold = get_config().plagiarism_threshold
    index = FingerprintIndex.from_submissions(s for s in corpus if s.id != submission.id)
    records = score_submission(submission, index)
    return records, is_plagiarized(records, threshold)


def run_similarity_pass(repository, submission_id: str, config: Optional[EngineConfig] = None) -> Submission:
    """
    Score a persisted submission against its assignment and store the report.

    Only the submission's own similar_submissions / is_plagiarized fields are written.

    Raises:
        SubmissionNotFound: if the submission does not exist
        RepositoryFailure: if the corpus cannot be read or the update fails
    """
    config = config or get_config()
    submission = repository.get(submission_id)
    if submission is None:
        raise SubmissionNotFound(submission_id)

    corpus = repository.find_by_assignment(submission.assignment_id)
    records, flagged = score_against_corpus(submission, corpus, threshold=config.plagiarism_threshold)

    logger.info(
        f"🔎 Similarity pass for {submission_id}: {len(records)} overlapping submission(s), "
        f"plagiarized={flagged}"
    )
    return repository.update_similarity(submission_id, records, flagged)
