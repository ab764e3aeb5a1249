"""Merging a stack head, or a whole stack, in dependency order."""

import re
import time
import logging
from typing import Callable, List, Optional, Set, Tuple

from . import metadata as stack_metadata
from .approval import ApprovalGate
from .graph import collect_stack
from .models import (ChildRef, MergeAttempt, MergeMethod, MergeResult, MergeStatus, RestackStatus,
                     SingleMergeReport, StackMergeReport, StackMetadata)
from .restack import RestackEngine
from .. import git as vcs
from ..config.models import StaqdConfig
from ..github import GitHubClient
from ..typing import GitInterface, MergeRejectedError

logger = logging.getLogger(__name__)

# Rejections that clear up on their own: checks still running, or the head
# branch was pushed (e.g. by our own restack) moments before the merge call
RETRYABLE_PATTERN = re.compile(r'required status|pending|expected|head branch was modified', re.IGNORECASE)


def is_retryable(message: str) -> bool:
    return bool(RETRYABLE_PATTERN.search(message))


class MergeOrchestrator:
    """Merges pull requests and restacks what sits on top of them."""

    def __init__(self, config: StaqdConfig, git_cmd: GitInterface, github: GitHubClient,
                 restacker: Optional[RestackEngine] = None, gate: Optional[ApprovalGate] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.git_cmd = git_cmd
        self.github = github
        self.restacker = restacker or RestackEngine(config, git_cmd, github)
        self.gate = gate or ApprovalGate(github)
        self.sleep = sleep

    @property
    def remote(self) -> str:
        return self.config.repo.github_remote

    def merge_method(self, meta: Optional[StackMetadata]) -> MergeMethod:
        return meta.merge_method if meta else self.config.merge.default_method

    def merge_one(self, number: int, method: MergeMethod, max_retries: int = 0) -> MergeAttempt:
        """Merge one pull request, retrying transient rejections.

        At most max_retries + 1 merge calls are made, with the configured
        delay between them. A fatal rejection ends the loop immediately.
        """
        delay = self.config.merge.retry_delay
        for attempt in range(1, max_retries + 2):
            try:
                sha = self.github.merge_change(number, method)
            except MergeRejectedError as e:
                error = str(e)
                if is_retryable(error) and attempt <= max_retries:
                    logger.info(f"  #{number} attempt {attempt}: {error}. Retry in {delay:g}s...")
                    self.sleep(delay)
                    continue
                logger.error(f"#{number} merge failed after {attempt} attempt(s): {error}")
                return MergeAttempt(ok=False, error=error, attempts=attempt)
            logger.info(f"#{number} merged as {sha[:8]}")
            return MergeAttempt(ok=True, sha=sha, attempts=attempt)
        # Unreachable: the last iteration always returns
        raise AssertionError("merge loop exited without a result")

    def merge_single_stack_head(self, number: int) -> SingleMergeReport:
        """Merge a pull request, then move its children onto the branch it merged into."""
        change, meta = stack_metadata.load(self.github, number)
        attempt = self.merge_one(number, self.merge_method(meta), self.config.merge.merge_retries)
        report = SingleMergeReport(pr=number, branch=change.head_ref, base=change.base_ref,
                                   skip=change.head_sha, merge=attempt)
        if not report.merge.ok or not meta or not meta.children:
            return report

        report.restacks = self.restacker.restack_children(
            meta.children,
            vcs.remote_ref(self.remote, change.base_ref),
            change.head_sha,
            retarget_to=change.base_ref,
        )
        return report

    def merge_all(self, root: int, force: bool = False) -> StackMergeReport:
        """Merge root and everything stacked on it, parents before children.

        Unless force is set, every pull request in the stored stack must be
        approved before anything is merged. After the root merges, the tree
        is walked in pre-order; each child is restacked onto the root's
        target branch, retargeted there and merged. A child that is missing,
        conflicts or fails to merge is recorded and its subtree is skipped;
        its siblings still proceed.
        """
        change, meta = stack_metadata.load(self.github, root)
        base = change.base_ref
        report = StackMergeReport(root=root, branch=change.head_ref, base=base)

        if not force:
            report.unapproved = self.gate.unapproved(collect_stack(self.github, root))
            if report.unapproved:
                logger.error(f"Not approved: {', '.join(f'#{n}' for n in report.unapproved)}")
                return report

        method = self.merge_method(meta)
        attempt = self.merge_one(root, method, self.config.merge.merge_retries)
        report.results.append(MergeResult(
            branch=change.head_ref, pr=root,
            status=MergeStatus.MERGED if attempt.ok else MergeStatus.MERGE_FAILED,
            old_tip=change.head_sha, sha=attempt.sha, error=attempt.error,
        ))
        if not attempt.ok:
            report.error = attempt.error
            return report

        onto = vcs.remote_ref(self.remote, base)
        visited: Set[int] = {root}
        # Worklist of (child, skip commit); popped from the end for pre-order
        pending: List[Tuple[ChildRef, str]] = []
        if meta:
            pending.extend((child, change.head_sha) for child in reversed(meta.children))

        while pending:
            child, skip = pending.pop()
            if child.pr in visited:
                logger.warning(f"#{child.pr} appears twice in the stack, skipping")
                continue
            visited.add(child.pr)

            result = self.merge_child(child, onto, skip, base, method)
            report.results.append(result)
            if not result.ok:
                continue

            _, child_meta = stack_metadata.load(self.github, child.pr)
            if child_meta and result.old_tip:
                # Grandchildren were built on the child's tip as it was before restacking
                pending.extend((grandchild, result.old_tip) for grandchild in reversed(child_meta.children))

        return report

    def merge_child(self, child: ChildRef, onto: str, skip: str, base: str, method: MergeMethod) -> MergeResult:
        """Restack, retarget and merge one child of an already merged pull request."""
        restacked = self.restacker.restack_children([child], onto, skip, retarget_to=base)[0]
        result = MergeResult(branch=child.branch, pr=child.pr, status=MergeStatus.MISSING,
                             old_tip=restacked.old_tip, onto=onto, skip=skip, error=restacked.error)
        if restacked.status is RestackStatus.MISSING:
            return result
        if restacked.status is RestackStatus.CONFLICT:
            result.status = MergeStatus.CONFLICT
            return result

        logger.info(f"Waiting for CI on #{child.pr} ({child.branch})...")
        attempt = self.merge_one(child.pr, method, self.config.merge.stack_merge_retries)
        if not attempt.ok:
            result.status = MergeStatus.MERGE_FAILED
            result.error = attempt.error
            return result

        result.status = MergeStatus.MERGED
        result.sha = attempt.sha
        return result
