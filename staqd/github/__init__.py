"""GitHub interfaces and implementation."""

import os
import logging
from pathlib import Path
from typing import Callable, Dict, List, Literal, Optional, Protocol, TypeVar, runtime_checkable

import yaml
from github.GithubException import GithubException

from .types import Change, Comment, Review
from ..config.models import StaqdConfig
from ..typing import ConfigError, GitHubError, MergeRejectedError

T = TypeVar('T')

# Define merge method type
MergeMethod = Literal['merge', 'squash', 'rebase']

# Get module logger
logger = logging.getLogger(__name__)

@runtime_checkable
class GitHubRepoProtocol(Protocol):
    """Protocol for a code-hosting repository (real or fake).

    Methods raise github.GithubException on failure, as PyGithub does.
    """
    def get_pull(self, number: int) -> Change:
        """Get a pull request by number."""
        ...

    def get_pulls(self, state: str = "open", base: str = "") -> List[Change]:
        """Get pull requests, optionally filtered by target branch."""
        ...

    def get_issue_comments(self, number: int) -> List[Comment]:
        """Get the comments of a pull request in listing order."""
        ...

    def create_issue_comment(self, number: int, body: str) -> Comment:
        """Add a comment to a pull request."""
        ...

    def edit_issue_comment(self, number: int, comment_id: int, body: str) -> None:
        """Replace the body of a comment."""
        ...

    def delete_issue_comment(self, number: int, comment_id: int) -> None:
        """Delete a comment."""
        ...

    def get_reviews(self, number: int) -> List[Review]:
        """Get all submitted reviews of a pull request."""
        ...

    def merge_pull(self, number: int, merge_method: str) -> str:
        """Merge a pull request and return the resulting commit sha."""
        ...

    def edit_pull(self, number: int, base: Optional[str] = None, body: Optional[str] = None) -> None:
        """Retarget a pull request and/or replace its body."""
        ...

    def compare(self, base: str, head: str) -> int:
        """Number of commits on head that are not reachable from base."""
        ...

@runtime_checkable
class PyGithubProtocol(Protocol):
    """Protocol for the top-level API object (real or fake)."""
    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        """Get a repository by full name."""
        ...

def error_message(e: GithubException) -> str:
    """Human readable message of a PyGithub exception."""
    data = e.data
    if isinstance(data, dict):
        message = data.get("message")
        if message:
            errors = data.get("errors")
            if isinstance(errors, list) and errors:
                details = "; ".join(str(err.get("message", err)) if isinstance(err, dict) else str(err)
                                    for err in errors)
                return f"{message} ({details})"
            return str(message)
    return str(e)

def find_github_token(host: str = "github.com") -> Optional[str]:
    """Find GitHub token from env var or gh CLI config."""
    token = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
    if token:
        return token

    try:
        gh_config_path = Path.home() / ".config" / "gh" / "hosts.yml"
        if gh_config_path.exists():
            with open(gh_config_path, "r") as f:
                gh_config = yaml.safe_load(f)
            if gh_config and host in gh_config:
                host_config: Dict[str, object] = gh_config[host]
                token = host_config.get("oauth_token")
                if isinstance(token, str):
                    return token
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error reading gh CLI config: {e}")
    return None

class GitHubClient:
    """GitHub client implementation.

    Thin layer over a repository object that logs every call and turns
    PyGithub exceptions into staqd errors.
    """
    def __init__(self, config: StaqdConfig, github_client: Optional[PyGithubProtocol] = None,
                 repo: Optional[GitHubRepoProtocol] = None):
        """Initialize with config and a GitHub client implementation (real or fake)."""
        self.config = config
        self.client = github_client
        self._repo: Optional[GitHubRepoProtocol] = repo

    @property
    def repo(self) -> GitHubRepoProtocol:
        """Get GitHub repository."""
        if self._repo is None:
            full_name = self.config.repo.full_name
            if not full_name:
                raise ConfigError("Repository owner/name unknown. Set GITHUB_REPOSITORY or pass --repo.")
            if self.client is None:
                raise ConfigError("No GitHub client available")
            self._repo = self.client.get_repo(full_name)
        return self._repo

    @repo.setter
    def repo(self, value: GitHubRepoProtocol) -> None:
        """Set the GitHub repository."""
        self._repo = value

    def _call(self, description: str, fn: Callable[[], T]) -> T:
        logger.info(f"> github {description}")
        try:
            return fn()
        except GithubException as e:
            raise GitHubError(f"{description}: {error_message(e)}", status=e.status) from e

    def get_change(self, number: int) -> Change:
        """Get a pull request by number."""
        return self._call(f"get pull #{number}", lambda: self.repo.get_pull(number))

    def list_open_changes(self, base: str) -> List[Change]:
        """Open pull requests targeting base."""
        return self._call(f"list open pulls targeting {base}",
                          lambda: self.repo.get_pulls(state="open", base=base))

    def list_comments(self, number: int) -> List[Comment]:
        return self._call(f"list comments #{number}", lambda: self.repo.get_issue_comments(number))

    def create_comment(self, number: int, body: str) -> Comment:
        return self._call(f"comment on #{number}", lambda: self.repo.create_issue_comment(number, body))

    def update_comment(self, number: int, comment_id: int, body: str) -> None:
        self._call(f"update comment {comment_id} on #{number}",
                   lambda: self.repo.edit_issue_comment(number, comment_id, body))

    def delete_comment(self, number: int, comment_id: int) -> None:
        self._call(f"delete comment {comment_id} on #{number}",
                   lambda: self.repo.delete_issue_comment(number, comment_id))

    def list_reviews(self, number: int) -> List[Review]:
        return self._call(f"list reviews #{number}", lambda: self.repo.get_reviews(number))

    def update_change(self, number: int, base: Optional[str] = None, body: Optional[str] = None) -> None:
        """Retarget and/or rewrite the body of a pull request."""
        changes = []
        if base is not None:
            changes.append(f"base={base}")
        if body is not None:
            changes.append("body")
        self._call(f"update pull #{number} ({', '.join(changes)})",
                   lambda: self.repo.edit_pull(number, base=base, body=body))

    def compare_commits(self, base: str, head: str) -> int:
        """Ahead-by count of head relative to base."""
        return self._call(f"compare {base}...{head}", lambda: self.repo.compare(base, head))

    def merge_change(self, number: int, method: MergeMethod) -> str:
        """Merge a pull request, returning the merge commit sha.

        Raises:
            MergeRejectedError: the platform refused the merge
        """
        logger.info(f"> github merge pull #{number} ({method})")
        try:
            return self.repo.merge_pull(number, method)
        except GithubException as e:
            raise MergeRejectedError(error_message(e), status=e.status) from e
