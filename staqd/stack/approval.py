"""Review-based approval gate for whole-stack merges."""

import logging
from typing import Dict, Iterable, List

from ..github import GitHubClient
from ..github.types import Review

logger = logging.getLogger(__name__)

APPROVED = "APPROVED"
CHANGES_REQUESTED = "CHANGES_REQUESTED"


def latest_reviews(reviews: Iterable[Review]) -> Dict[str, Review]:
    """Most recent submitted review per reviewer.

    Reviews without an author or a submission time (pending drafts) are
    ignored. On equal timestamps the one listed first wins.
    """
    latest: Dict[str, Review] = {}
    for review in reviews:
        if not review.user_login or review.submitted_at is None:
            continue
        current = latest.get(review.user_login)
        if current is None or review.submitted_at > current.submitted_at:  # type: ignore[operator]
            latest[review.user_login] = review
    return latest


def reviews_approve(reviews: Iterable[Review]) -> bool:
    """At least one current approval and no current change request."""
    states = [r.state for r in latest_reviews(reviews).values()]
    return APPROVED in states and CHANGES_REQUESTED not in states


class ApprovalGate:
    """Decides whether pull requests are approved by their reviewers."""

    def __init__(self, github: GitHubClient):
        self.github = github

    def is_approved(self, number: int) -> bool:
        approved = reviews_approve(self.github.list_reviews(number))
        logger.info(f"#{number}: {'approved' if approved else 'not approved'}")
        return approved

    def unapproved(self, numbers: Iterable[int]) -> List[int]:
        """The subset of numbers that is not approved, in input order."""
        return [n for n in numbers if not self.is_approved(n)]
