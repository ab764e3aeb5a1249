"""Type definitions for code-hosting API objects."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

class Change(BaseModel):
    """A pull request as seen by the stack engine."""
    number: int
    title: str = ""
    body: str = ""
    state: str = "open"
    merged: bool = False
    base_ref: str  # target branch
    head_ref: str  # source branch
    head_sha: str  # current tip of the source branch

class Comment(BaseModel):
    """An issue comment on a pull request."""
    id: int
    body: str = ""
    user_login: Optional[str] = None
    user_type: Optional[str] = None  # "User" or "Bot"

class Review(BaseModel):
    """A submitted pull request review."""
    user_login: Optional[str] = None  # None for deleted (ghost) accounts
    state: str  # APPROVED, CHANGES_REQUESTED, COMMENTED, DISMISSED, PENDING
    submitted_at: Optional[datetime] = None
