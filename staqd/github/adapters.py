"""Adapter classes to wrap PyGithub objects with our protocol interfaces."""

from typing import List, Optional
import logging

from github import Github
from github.GithubException import GithubException
from github.GithubObject import NotSet
from github.IssueComment import IssueComment
from github.PullRequest import PullRequest as PyGithubPullRequest
from github.PullRequestReview import PullRequestReview
from github.Repository import Repository

from . import GitHubRepoProtocol, PyGithubProtocol
from .types import Change, Comment, Review

logger = logging.getLogger(__name__)


def to_change(pr: PyGithubPullRequest) -> Change:
    """Convert a PyGithub pull request."""
    return Change(
        number=pr.number,
        title=pr.title or "",
        body=pr.body or "",
        state=pr.state,
        merged=bool(pr.merged),
        base_ref=pr.base.ref,
        head_ref=pr.head.ref,
        head_sha=pr.head.sha,
    )


def to_comment(comment: IssueComment) -> Comment:
    """Convert a PyGithub issue comment."""
    user = comment.user
    return Comment(
        id=comment.id,
        body=comment.body or "",
        user_login=user.login if user else None,
        user_type=user.type if user else None,
    )


def to_review(review: PullRequestReview) -> Review:
    """Convert a PyGithub review."""
    user = review.user
    return Review(
        user_login=user.login if user else None,
        state=review.state,
        submitted_at=review.submitted_at,
    )


class PyGithubRepoAdapter(GitHubRepoProtocol):
    """Adapter for PyGithub Repository objects."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def get_pull(self, number: int) -> Change:
        return to_change(self._repo.get_pull(number))

    def get_pulls(self, state: str = "open", base: str = "") -> List[Change]:
        pulls = self._repo.get_pulls(state=state, base=base if base else NotSet)
        return [to_change(pr) for pr in pulls]

    def get_issue_comments(self, number: int) -> List[Comment]:
        return [to_comment(c) for c in self._repo.get_issue(number).get_comments()]

    def create_issue_comment(self, number: int, body: str) -> Comment:
        return to_comment(self._repo.get_issue(number).create_comment(body))

    def edit_issue_comment(self, number: int, comment_id: int, body: str) -> None:
        self._repo.get_issue(number).get_comment(comment_id).edit(body)

    def delete_issue_comment(self, number: int, comment_id: int) -> None:
        self._repo.get_issue(number).get_comment(comment_id).delete()

    def get_reviews(self, number: int) -> List[Review]:
        return [to_review(r) for r in self._repo.get_pull(number).get_reviews()]

    def merge_pull(self, number: int, merge_method: str) -> str:
        status = self._repo.get_pull(number).merge(merge_method=merge_method)
        if not status.merged:
            # The API reports some refusals in the body instead of the status code
            raise GithubException(405, {"message": status.message or "Pull request was not merged"}, None)
        return status.sha

    def edit_pull(self, number: int, base: Optional[str] = None, body: Optional[str] = None) -> None:
        self._repo.get_pull(number).edit(
            base=base if base is not None else NotSet,
            body=body if body is not None else NotSet,
        )

    def compare(self, base: str, head: str) -> int:
        return self._repo.compare(base, head).ahead_by


class PyGithubAdapter(PyGithubProtocol):
    """Adapter for the main PyGithub object."""

    def __init__(self, github: Github) -> None:
        self._github = github

    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        """Get a repository by full name."""
        return PyGithubRepoAdapter(self._github.get_repo(full_name_or_id))
