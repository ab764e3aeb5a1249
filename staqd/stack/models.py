"""Data model of a stack: stored metadata, discovered nodes and per-branch outcomes."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

MergeMethod = Literal['squash', 'merge', 'rebase']
DEFAULT_MERGE_METHOD: MergeMethod = 'squash'
METADATA_VERSION = 1


class ChildRef(BaseModel):
    """A direct child of a pull request: its source branch and number."""
    branch: str
    pr: int


class StackMetadata(BaseModel):
    """Persisted description of a pull request's children and merge policy."""
    version: int = METADATA_VERSION
    children: List[ChildRef] = Field(default_factory=list)
    merge_method: MergeMethod = DEFAULT_MERGE_METHOD


@dataclass
class ChildEdge:
    """Edge from a discovered node to one of its children."""
    branch: str
    pr: int
    needs_restack: bool = False


@dataclass
class StackNode:
    """A pull request visited during discovery."""
    pr: int
    branch: str
    depth: int
    children: List[ChildEdge] = field(default_factory=list)

    @property
    def stale(self) -> bool:
        """True if any child is behind this node's branch."""
        return any(c.needs_restack for c in self.children)


class RestackStatus(str, Enum):
    RESTACKED = "restacked"
    CONFLICT = "conflict"
    MISSING = "missing"


class MergeStatus(str, Enum):
    MERGED = "merged"
    CONFLICT = "conflict"
    MERGE_FAILED = "merge_failed"
    MISSING = "missing"


@dataclass
class RestackResult:
    """Outcome of restacking one branch.

    onto and skip are the arguments the rebase ran with; together with
    old_tip they are enough to print the manual recovery commands.
    """
    branch: str
    pr: int
    status: RestackStatus
    onto: str
    skip: str
    old_tip: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is RestackStatus.RESTACKED


@dataclass
class MergeResult:
    """Outcome of one pull request during a stack merge."""
    branch: str
    pr: int
    status: MergeStatus
    old_tip: Optional[str] = None
    onto: Optional[str] = None
    skip: Optional[str] = None
    sha: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is MergeStatus.MERGED


@dataclass
class MergeAttempt:
    """Result of merging a single pull request (possibly after retries)."""
    ok: bool
    sha: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0


@dataclass
class SingleMergeReport:
    """Report of `merge`: the head merge and the restack of its children."""
    pr: int
    branch: str
    base: str
    skip: str
    merge: MergeAttempt
    restacks: List[RestackResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.merge.ok and all(r.ok for r in self.restacks)


class Outcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


@dataclass
class StackMergeReport:
    """Report of `merge-all`.

    results lists every visited pull request in visitation order, root
    first. A subtree whose root failed contributes only that root.
    """
    root: int
    branch: str
    base: str
    unapproved: List[int] = field(default_factory=list)
    results: List[MergeResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.unapproved and self.error is None and all(r.ok for r in self.results)

    @property
    def merged(self) -> List[MergeResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[MergeResult]:
        return [r for r in self.results if not r.ok]

    @property
    def outcome(self) -> Outcome:
        if self.ok:
            return Outcome.SUCCESS
        if self.merged:
            return Outcome.PARTIAL
        return Outcome.FAILURE
