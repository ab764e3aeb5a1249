"""Operator commands: each runs one stack operation and reports on the pull request."""

import re
import time
import logging
from typing import Callable, Optional, Tuple

from .. import pretty
from .. import git as vcs
from ..config.models import StaqdConfig
from ..github import GitHubClient
from ..stack import metadata as stack_metadata
from ..stack.approval import ApprovalGate
from ..stack.graph import StackGraph
from ..stack.merge import MergeOrchestrator
from ..stack.restack import RestackEngine
from ..typing import GitHubError, GitInterface

logger = logging.getLogger(__name__)

COMMANDS = ('help', 'restack', 'merge', 'merge-all', 'discover')
COMMENT_COMMAND_PATTERN = re.compile(
    r'^\s*(?:stack|st)\s+(help|restack|merge-all|merge|discover)(\s+--force)?\s*$')


def parse_comment_command(text: str) -> Optional[Tuple[str, bool]]:
    """Map a comment like `st merge-all --force` to (command, force).

    Only the first line is considered. --force is only meaningful for
    merge-all and is rejected elsewhere.
    """
    lines = (text or "").strip().splitlines()
    if not lines:
        return None
    match = COMMENT_COMMAND_PATTERN.match(lines[0])
    if not match:
        return None
    command, force = match.group(1), bool(match.group(2))
    if force and command != 'merge-all':
        return None
    return command, force


class StackCommands:
    """Runs operator commands against one pull request.

    Every command returns True when everything in scope reached its
    terminal success state.
    """

    def __init__(self, config: StaqdConfig, github: GitHubClient, git_cmd: GitInterface,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.github = github
        self.git_cmd = git_cmd
        self.restacker = RestackEngine(config, git_cmd, github)
        self.graph = StackGraph(github)
        self.orchestrator = MergeOrchestrator(config, git_cmd, github, restacker=self.restacker,
                                              gate=ApprovalGate(github), sleep=sleep)

    @property
    def remote(self) -> str:
        return self.config.repo.github_remote

    def post(self, number: int, title: str, body: str) -> None:
        """Comment on a pull request, or print when commenting is off."""
        if self.config.tool.comment:
            self.github.create_comment(number, body)
        else:
            pretty.print_report(f"#{number} {title}", body)

    def run(self, command: str, number: int, force: bool = False, skip: Optional[str] = None) -> bool:
        """Dispatch by command name."""
        if command == 'help':
            return self.help(number)
        if command == 'restack':
            return self.restack(number, skip)
        if command == 'merge':
            return self.merge(number)
        if command == 'merge-all':
            return self.merge_all(number, force)
        if command == 'discover':
            return self.discover(number)
        if command == 'guide':
            return self.guide(number)
        raise ValueError(f"Unknown command: {command}")

    def help(self, number: int) -> bool:
        change, meta = stack_metadata.load(self.github, number)
        self.post(number, "help", pretty.help_text(change, meta.children if meta else []))
        return True

    def restack(self, number: int, skip: Optional[str] = None) -> bool:
        """Rebase the stored children onto this pull request's current branch."""
        change, meta = stack_metadata.load(self.github, number)
        if not meta or not meta.children:
            self.post(number, "restack", 'No children to restack.')
            return True

        results = self.restacker.restack_children(
            meta.children,
            vcs.remote_ref(self.remote, change.head_ref),
            skip or change.head_sha,
        )
        ok = all(r.ok for r in results)
        self.post(number, "restack", pretty.restack_report(results, self.remote))
        if not ok:
            logger.error('Restack had failures')
        return ok

    def merge(self, number: int) -> bool:
        """Merge this pull request and restack its children onto its base."""
        report = self.orchestrator.merge_single_stack_head(number)
        self.post(number, "merge", pretty.single_merge_report(report, self.remote))
        if not report.merge.ok:
            logger.error(f"Merge failed: {report.merge.error}")
            return False

        for result in report.restacks:
            try:
                self.post(result.pr, "notice", pretty.child_notice(report, result))
            except GitHubError as e:
                logger.warning(f"Could not notify #{result.pr}: {e}")

        if not report.ok:
            logger.error('Restack had failures')
        return report.ok

    def merge_all(self, number: int, force: bool = False) -> bool:
        """Merge the whole stack rooted at this pull request."""
        report = self.orchestrator.merge_all(number, force=force)
        self.post(number, "merge-all", pretty.stack_merge_report(report, self.remote))
        if not report.ok:
            logger.error(f"Not all PRs merged ({report.outcome.value})")
        return report.ok

    def discover(self, number: int) -> bool:
        """Rebuild stack metadata from base branches and report the tree."""
        nodes = self.graph.discover(number)
        self.post(number, "discover", pretty.discovery_report(nodes))
        return True

    def guide(self, number: int) -> bool:
        """Create, refresh or delete the guide comment of a pull request."""
        change = self.github.get_change(number)
        meta = stack_metadata.decode(change.body)
        existing = next((c for c in self.github.list_comments(number)
                         if c.user_type == "Bot" and pretty.GUIDE_MARKER in c.body), None)

        if not meta or not meta.children:
            if existing:
                self.github.delete_comment(number, existing.id)
            return True

        body = pretty.guide_body(change, meta.children)
        if existing:
            if existing.body != body:
                self.github.update_comment(number, existing.id, body)
        else:
            self.github.create_comment(number, body)
        return True
