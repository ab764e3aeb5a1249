"""In-memory fakes of the code-hosting repository and of git for tests."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import git
from github.GithubException import GithubException

from staqd.config import Config
from staqd.github import GitHubClient
from staqd.github.types import Change, Comment, Review
from staqd.typing import GitError

logger = logging.getLogger(__name__)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """A review timestamp `minutes` after a fixed origin."""
    return T0 + timedelta(minutes=minutes)


def make_config(**merge: object) -> Config:
    """Config pointing at a fake repository, with no retry delay by default."""
    merge_config: Dict[str, object] = {'retry_delay': 0}
    merge_config.update(merge)
    return Config({
        'repo': {
            'github_remote': 'origin',
            'github_repo_owner': 'acme',
            'github_repo_name': 'widgets',
        },
        'merge': merge_config,
        'tool': {'comment': True},
    })


@dataclass
class FakePull:
    """Database record for a pull request."""
    number: int
    head_ref: str
    base_ref: str
    body: str = ""
    title: str = ""
    state: str = "open"
    merged: bool = False
    head_sha: str = ""


@dataclass
class FakeRepo:
    """Fake repository.

    Without a remote, head commits are whatever the test stored and
    merges only flip flags. With remote_dir (a bare repository) and
    scratch_dir (a clone of it), head commits are read from the remote,
    compare counts real commits, and merges land on the base branch as a
    squash (or a merge commit for method "merge").
    """
    remote_dir: Optional[str] = None
    scratch_dir: Optional[str] = None
    pulls: Dict[int, FakePull] = field(default_factory=dict)
    comments: Dict[int, List[Comment]] = field(default_factory=dict)
    reviews: Dict[int, List[Review]] = field(default_factory=dict)
    # Queued merge rejections per PR, consumed one per merge call
    merge_errors: Dict[int, List[str]] = field(default_factory=dict)
    # Rejection returned on every merge call
    always_reject: Dict[int, str] = field(default_factory=dict)
    merge_calls: List[Tuple[int, str]] = field(default_factory=list)
    edits: List[Tuple[int, Optional[str], Optional[str]]] = field(default_factory=list)
    ahead: Dict[Tuple[str, str], int] = field(default_factory=dict)
    missing_branches: List[str] = field(default_factory=list)
    next_comment_id: int = 1000

    def add_pull(self, number: int, head: str, base: str, body: str = "", head_sha: str = "") -> FakePull:
        pull = FakePull(number=number, head_ref=head, base_ref=base, body=body,
                        title=f"PR {number}", head_sha=head_sha or f"{number:040x}")
        self.pulls[number] = pull
        return pull

    def add_review(self, number: int, user: Optional[str], state: str, minutes: Optional[int]) -> None:
        self.reviews.setdefault(number, []).append(
            Review(user_login=user, state=state, submitted_at=at(minutes) if minutes is not None else None))

    def approve_all(self) -> None:
        for number in self.pulls:
            self.add_review(number, "reviewer", "APPROVED", 1)

    def _pull(self, number: int) -> FakePull:
        if number not in self.pulls:
            raise GithubException(404, {"message": "Not Found"}, None)
        return self.pulls[number]

    def _remote(self) -> git.Repo:
        return git.Repo(self.remote_dir)

    def _head_sha(self, pull: FakePull) -> str:
        if self.remote_dir is None:
            return pull.head_sha
        try:
            return self._remote().git.rev_parse(f"refs/heads/{pull.head_ref}")
        except git.GitCommandError:
            return pull.head_sha

    def _change(self, pull: FakePull) -> Change:
        return Change(number=pull.number, title=pull.title, body=pull.body, state=pull.state,
                      merged=pull.merged, base_ref=pull.base_ref, head_ref=pull.head_ref,
                      head_sha=self._head_sha(pull))

    def get_pull(self, number: int) -> Change:
        return self._change(self._pull(number))

    def get_pulls(self, state: str = "open", base: str = "") -> List[Change]:
        return [self._change(p) for _, p in sorted(self.pulls.items())
                if p.state == state and (not base or p.base_ref == base)]

    def get_issue_comments(self, number: int) -> List[Comment]:
        return list(self.comments.get(number, []))

    def create_issue_comment(self, number: int, body: str, user_type: str = "Bot") -> Comment:
        self.next_comment_id += 1
        comment = Comment(id=self.next_comment_id, body=body, user_login="staqd[bot]", user_type=user_type)
        self.comments.setdefault(number, []).append(comment)
        return comment

    def edit_issue_comment(self, number: int, comment_id: int, body: str) -> None:
        for comment in self.comments.get(number, []):
            if comment.id == comment_id:
                comment.body = body
                return
        raise GithubException(404, {"message": "Not Found"}, None)

    def delete_issue_comment(self, number: int, comment_id: int) -> None:
        self.comments[number] = [c for c in self.comments.get(number, []) if c.id != comment_id]

    def get_reviews(self, number: int) -> List[Review]:
        return list(self.reviews.get(number, []))

    def merge_pull(self, number: int, merge_method: str) -> str:
        self.merge_calls.append((number, merge_method))
        pull = self._pull(number)
        if number in self.always_reject:
            raise GithubException(405, {"message": self.always_reject[number]}, None)
        queued = self.merge_errors.get(number)
        if queued:
            raise GithubException(405, {"message": queued.pop(0)}, None)
        if pull.state != "open":
            raise GithubException(405, {"message": "Pull Request is not mergeable"}, None)

        sha = f"{number:08x}" * 5 if self.remote_dir is None else self._land(pull, merge_method)
        pull.merged = True
        pull.state = "closed"
        return sha

    def _land(self, pull: FakePull, merge_method: str) -> str:
        work = git.Repo(self.scratch_dir)
        work.git.fetch("--prune", "origin")
        work.git.checkout("-B", pull.base_ref, f"origin/{pull.base_ref}")
        message = f"{pull.title} (#{pull.number})"
        try:
            if merge_method == "merge":
                work.git.merge("--no-ff", "-m", message, f"origin/{pull.head_ref}")
            else:
                work.git.merge("--squash", f"origin/{pull.head_ref}")
                work.git.commit("-m", message)
        except git.GitCommandError as e:
            work.git.reset("--hard", f"origin/{pull.base_ref}")
            raise GithubException(405, {"message": f"Pull Request is not mergeable: {e}"}, None)
        work.git.push("origin", pull.base_ref)
        return work.head.commit.hexsha

    def edit_pull(self, number: int, base: Optional[str] = None, body: Optional[str] = None) -> None:
        pull = self._pull(number)
        self.edits.append((number, base, body))
        if base is not None:
            pull.base_ref = base
        if body is not None:
            pull.body = body

    def compare(self, base: str, head: str) -> int:
        if base in self.missing_branches or head in self.missing_branches:
            raise GithubException(404, {"message": "Not Found"}, None)
        if self.remote_dir is None:
            return self.ahead.get((base, head), 0)
        try:
            count = self._remote().git.rev_list("--count", f"refs/heads/{base}..refs/heads/{head}")
        except git.GitCommandError:
            raise GithubException(404, {"message": "Not Found"}, None)
        return int(count)


def make_client(repo: FakeRepo, config: Optional[Config] = None) -> GitHubClient:
    return GitHubClient(config or make_config(), repo=repo)


class ScriptedGit:
    """GitInterface fake that records commands.

    responses maps an exact command to its output; failures maps a command
    prefix to the error message raised for it.
    """

    def __init__(self, responses: Optional[Dict[str, str]] = None,
                 failures: Optional[Dict[str, str]] = None):
        self.commands: List[str] = []
        self.responses = responses or {}
        self.failures = failures or {}

    def run_cmd(self, command: str, output: Optional[str] = None) -> str:
        self.commands.append(command)
        for prefix, message in self.failures.items():
            if command.startswith(prefix):
                raise GitError(message)
        return self.responses.get(command, "")

    def must_git(self, command: str, output: Optional[str] = None) -> str:
        return self.run_cmd(command, output)


def tip_cmd(branch: str, remote: str = "origin") -> str:
    """The command RestackEngine uses to read a remote branch tip."""
    return f"rev-parse --verify {remote}/{branch}^{{commit}}"
