"""Stack discovery from base-branch pointers."""

import logging
from typing import List, Optional, Set, Tuple

from . import metadata as stack_metadata
from .models import ChildEdge, ChildRef, DEFAULT_MERGE_METHOD, StackMetadata, StackNode
from ..github import GitHubClient
from ..github.types import Change
from ..typing import GitHubError

logger = logging.getLogger(__name__)


class StackGraph:
    """Builds the tree of pull requests rooted at a given pull request.

    Any open pull request whose target branch is a node's source branch is
    a child of that node. Discovery rewrites each visited node's stored
    metadata to match what it found.
    """

    def __init__(self, github: GitHubClient):
        self.github = github

    def find_children(self, branch: str) -> List[ChildRef]:
        """Open pull requests targeting branch."""
        return [ChildRef(branch=pr.head_ref, pr=pr.number)
                for pr in self.github.list_open_changes(branch)]

    def needs_restack(self, parent_branch: str, child_branch: str) -> bool:
        """True if parent_branch has commits child_branch does not contain.

        Comparison failures (a deleted branch, an API error) count as up to
        date so a report can still be produced.
        """
        try:
            return self.github.compare_commits(child_branch, parent_branch) > 0
        except GitHubError as e:
            logger.warning(f"Could not compare {child_branch} with {parent_branch}: {e}")
            return False

    def write_metadata(self, change: Change, existing: Optional[StackMetadata],
                       children: List[ChildRef]) -> None:
        """Replace the body metadata of change, or clear it when it has no children."""
        if not children:
            new_body = stack_metadata.without_metadata(change.body)
        else:
            merge_method = existing.merge_method if existing else DEFAULT_MERGE_METHOD
            new_metadata = StackMetadata(children=children, merge_method=merge_method)
            new_body = stack_metadata.with_metadata(change.body, new_metadata)
        if new_body != change.body.strip():
            self.github.update_change(change.number, body=new_body)
        else:
            logger.debug(f"#{change.number}: stack metadata unchanged")

    def discover(self, root: int, visited: Optional[Set[int]] = None) -> List[StackNode]:
        """Walk the stack below root in pre-order, refreshing metadata on the way.

        Args:
            root: pull request number to start from
            visited: numbers to treat as already seen; updated in place.
                Each number is visited at most once, which keeps a circular
                base-branch assignment from looping forever.

        Returns:
            The visited nodes in visitation order.
        """
        if visited is None:
            visited = set()
        nodes: List[StackNode] = []
        pending: List[Tuple[int, int]] = [(root, 0)]

        while pending:
            number, depth = pending.pop()
            if number in visited:
                logger.debug(f"#{number} already visited, skipping")
                continue
            visited.add(number)

            change, existing = stack_metadata.load(self.github, number)
            children = self.find_children(change.head_ref)
            self.write_metadata(change, existing, children)

            node = StackNode(pr=number, branch=change.head_ref, depth=depth)
            for child in children:
                stale = self.needs_restack(change.head_ref, child.branch)
                node.children.append(ChildEdge(branch=child.branch, pr=child.pr, needs_restack=stale))
            nodes.append(node)
            logger.info(f"{'  ' * depth}#{number} ({change.head_ref}): "
                        f"{len(children)} child(ren)")

            # Reversed so the first child is popped next
            for child in reversed(children):
                pending.append((child.pr, depth + 1))

        return nodes


def collect_stack(github: GitHubClient, root: int) -> List[int]:
    """Every pull request number reachable from root through stored metadata, in pre-order."""
    visited: Set[int] = set()
    order: List[int] = []
    pending = [root]
    while pending:
        number = pending.pop()
        if number in visited:
            continue
        visited.add(number)
        order.append(number)
        _, meta = stack_metadata.load(github, number)
        if meta:
            pending.extend(child.pr for child in reversed(meta.children))
    return order
