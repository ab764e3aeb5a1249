"""Restacking sibling branches onto a new ancestor tip."""

import logging
from typing import Iterable, List, Optional

from .models import ChildRef, RestackResult, RestackStatus
from .. import git as vcs
from ..config.models import StaqdConfig
from ..github import GitHubClient
from ..typing import GitError, GitHubError, GitInterface

logger = logging.getLogger(__name__)


class RestackEngine:
    """Re-parents the children of one pull request onto a new base.

    Children are siblings: each one is rebased against the same new base,
    never onto another child, and a failure on one does not stop the rest.
    The rebase boundary is always the caller's skip commit, so running the
    same restack twice cannot replay a commit twice.
    """

    def __init__(self, config: StaqdConfig, git_cmd: GitInterface, github: GitHubClient):
        self.config = config
        self.git_cmd = git_cmd
        self.github = github

    @property
    def remote(self) -> str:
        return self.config.repo.github_remote

    def restack_children(self, children: Iterable[ChildRef], new_base_ref: str, skip_commit: str,
                         retarget_to: Optional[str] = None) -> List[RestackResult]:
        """Rebase each child's own commits (those above skip_commit) onto new_base_ref.

        Args:
            children: sibling branches to move
            new_base_ref: ref to rebase onto, e.g. origin/main
            skip_commit: last commit inherited from the old parent; only
                commits after it are replayed
            retarget_to: when the parent was just merged, the branch every
                successfully restacked child's pull request should target

        Returns:
            One result per child, in input order.
        """
        vcs.fetch(self.git_cmd, self.remote)
        results: List[RestackResult] = []

        with vcs.working_tree(self.git_cmd):
            for child in children:
                result = self.restack_one(child, new_base_ref, skip_commit)
                results.append(result)
                logger.info(f"#{child.pr} ({child.branch}): {result.status.value}")

        if retarget_to is not None:
            for result in results:
                if result.ok:
                    self.retarget(result.pr, retarget_to)

        return results

    def restack_one(self, child: ChildRef, new_base_ref: str, skip_commit: str) -> RestackResult:
        """Rebase a single branch. The remote branch is only pushed if every step succeeded."""
        old_tip = vcs.remote_tip(self.git_cmd, self.remote, child.branch)
        if old_tip is None:
            return RestackResult(branch=child.branch, pr=child.pr, status=RestackStatus.MISSING,
                                 onto=new_base_ref, skip=skip_commit)

        try:
            vcs.checkout_detached(self.git_cmd, new_base_ref)
            vcs.reset_local_branch(self.git_cmd, child.branch, old_tip)
            vcs.rebase_onto(self.git_cmd, new_base_ref, skip_commit, child.branch)
            vcs.push_with_lease(self.git_cmd, self.remote, child.branch, old_tip)
        except GitError as e:
            logger.error(f"Restack of {child.branch} failed: {e}")
            vcs.abort_rebase(self.git_cmd)
            return RestackResult(branch=child.branch, pr=child.pr, status=RestackStatus.CONFLICT,
                                 onto=new_base_ref, skip=skip_commit, old_tip=old_tip, error=str(e))

        return RestackResult(branch=child.branch, pr=child.pr, status=RestackStatus.RESTACKED,
                             onto=new_base_ref, skip=skip_commit, old_tip=old_tip)

    def retarget(self, number: int, base: str) -> None:
        """Point a pull request at base. Failures are logged; the restack itself already landed."""
        try:
            self.github.update_change(number, base=base)
        except GitHubError as e:
            logger.warning(f"Could not retarget #{number} to {base}: {e}")
