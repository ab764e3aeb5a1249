"""Common types used across the codebase."""

from typing import NewType, Optional, Protocol

# Identifiers passed between the git and github layers
CommitHash = NewType('CommitHash', str)
BranchName = NewType('BranchName', str)


class GitInterface(Protocol):
    """Protocol for running git commands (real or fake)."""
    def run_cmd(self, command: str, output: Optional[str] = None) -> str:
        """Run git command."""
        ...

    def must_git(self, command: str, output: Optional[str] = None) -> str:
        """Run git command, failing on error."""
        ...


class StaqdError(Exception):
    """Base class for all staqd errors."""


class ConfigError(StaqdError):
    """Repository coordinates or credentials could not be determined."""


class GitError(StaqdError):
    """A git command failed. The message carries git's own output."""


class GitHubError(StaqdError):
    """A code-hosting API call failed."""
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class MergeRejectedError(GitHubError):
    """The platform refused to merge a pull request.

    The message is the platform's text verbatim; the merge orchestrator
    uses it to tell transient rejections (pending checks, head moved)
    from fatal ones.
    """
