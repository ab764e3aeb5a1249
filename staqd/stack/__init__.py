"""Stack orchestration: metadata, discovery, restacking and merging."""

from .models import (ChildEdge, ChildRef, MergeAttempt, MergeResult, MergeStatus, Outcome,
                     RestackResult, RestackStatus, SingleMergeReport, StackMergeReport,
                     StackMetadata, StackNode)
from .graph import StackGraph, collect_stack
from .restack import RestackEngine
from .approval import ApprovalGate
from .merge import MergeOrchestrator

__all__ = [
    'ApprovalGate', 'ChildEdge', 'ChildRef', 'MergeAttempt', 'MergeOrchestrator', 'MergeResult',
    'MergeStatus', 'Outcome', 'RestackEngine', 'RestackResult', 'RestackStatus', 'SingleMergeReport',
    'StackGraph', 'StackMergeReport', 'StackMetadata', 'StackNode', 'collect_stack',
]
