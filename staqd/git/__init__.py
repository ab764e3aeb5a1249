"""Git interfaces and implementation."""

import os
import shlex
import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple
import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..typing import BranchName, CommitHash, GitError, GitInterface
from ..config.models import StaqdConfig

# Get module logger
logger = logging.getLogger(__name__)

class RealGit:
    """Real Git implementation backed by GitPython."""
    def __init__(self, config: StaqdConfig, repo_dir: Optional[str] = None):
        """Initialize with config and the repository working directory."""
        self.config: StaqdConfig = config
        self.repo_dir = repo_dir or os.getcwd()

    def run_cmd(self, command: str, output: Optional[str] = None) -> str:
        """Run git command."""
        cmd_str = command.strip()

        # Always log git commands
        logger.info(f"> git {cmd_str}")
        try:
            repo = git.Repo(self.repo_dir, search_parent_directories=True)
            cmd_parts = shlex.split(cmd_str)
            git_command = cmd_parts[0]
            git_args = cmd_parts[1:]
            method = getattr(repo.git, git_command.replace('-', '_'))
            result = method(*git_args)
            return result if isinstance(result, str) else str(result)
        except GitCommandError as e:
            raise GitError(f"Git command failed: {e}") from e
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise GitError("Not in a git repository") from e

    def must_git(self, command: str, output: Optional[str] = None) -> str:
        """Run git command, failing on error."""
        return self.run_cmd(command, output)

def remote_ref(remote: str, branch: str) -> str:
    """Remote-tracking ref name for a branch, e.g. origin/feature."""
    return f"{remote}/{branch}"

def fetch(git_cmd: GitInterface, remote: str) -> None:
    """Fetch the remote, dropping tracking refs of deleted branches."""
    git_cmd.must_git(f"fetch --prune {remote}")

def remote_tip(git_cmd: GitInterface, remote: str, branch: str) -> Optional[CommitHash]:
    """Current commit of a remote branch, or None if it no longer exists."""
    try:
        sha = git_cmd.must_git(f"rev-parse --verify {remote_ref(remote, branch)}^{{commit}}").strip()
    except GitError:
        logger.info(f"Remote branch {remote_ref(remote, branch)} not found")
        return None
    return CommitHash(sha) if sha else None

def reset_local_branch(git_cmd: GitInterface, branch: str, sha: str) -> None:
    """Point the local branch at sha, creating it if needed.

    The local branch is always reset to the observed remote tip so a stale
    local copy from an earlier run can never leak into a rebase.
    """
    git_cmd.must_git(f"branch -f {branch} {sha}")

def checkout_detached(git_cmd: GitInterface, ref: str) -> None:
    """Check out ref without attaching HEAD to a branch."""
    git_cmd.must_git(f"checkout --detach {ref}")

def rebase_onto(git_cmd: GitInterface, onto: str, skip: str, branch: str) -> None:
    """Replay the commits of branch that are not reachable from skip onto onto."""
    git_cmd.must_git(f"rebase --onto {onto} {skip} {branch}")

def abort_rebase(git_cmd: GitInterface) -> None:
    """Abort an in-progress rebase. Failures are logged, never raised."""
    try:
        git_cmd.run_cmd("rebase --abort")
    except GitError as e:
        logger.debug(f"rebase --abort failed (no rebase in progress?): {e}")

def push_with_lease(git_cmd: GitInterface, remote: str, branch: str, expected: str) -> None:
    """Force-push branch, refusing if the remote moved away from expected."""
    git_cmd.must_git(f"push --force-with-lease={branch}:{expected} {remote} {branch}")

def current_position(git_cmd: GitInterface) -> Tuple[Optional[BranchName], CommitHash]:
    """Current branch (None when detached) and HEAD commit."""
    branch = git_cmd.must_git("rev-parse --abbrev-ref HEAD").strip()
    head = git_cmd.must_git("rev-parse HEAD").strip()
    return (BranchName(branch) if branch and branch != "HEAD" else None), CommitHash(head)

@contextmanager
def working_tree(git_cmd: GitInterface) -> Iterator[None]:
    """Hold the working tree for a sequence of checkouts and rebases.

    On every exit path any in-progress rebase is aborted and the branch
    (or detached commit) that was checked out on entry is checked out
    again. Cleanup failures are logged and never mask the body's outcome.
    """
    try:
        branch, head = current_position(git_cmd)
    except GitError as e:
        logger.warning(f"Could not record working tree position: {e}")
        branch, head = None, None
    try:
        yield
    finally:
        abort_rebase(git_cmd)
        target = branch or head
        if target:
            try:
                git_cmd.must_git(f"checkout {target}")
            except GitError as e:
                logger.error(f"Failed to restore {target}: {e}")
                logger.error(f"To manually restore: git rebase --abort; git checkout {target}")
