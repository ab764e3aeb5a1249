"""Pydantic models for config types."""

from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

class RepoConfig(BaseModel):
    """Repository configuration."""
    model_config = ConfigDict(extra="allow")

    github_remote: str = "origin"
    github_host: str = "github.com"
    github_repo_owner: Optional[str] = None
    github_repo_name: Optional[str] = None

    @property
    def full_name(self) -> Optional[str]:
        """owner/name, or None while either part is unknown."""
        if self.github_repo_owner and self.github_repo_name:
            return f"{self.github_repo_owner}/{self.github_repo_name}"
        return None

class MergeConfig(BaseModel):
    """Merge and retry policy."""
    model_config = ConfigDict(extra="allow")

    default_method: Literal['squash', 'merge', 'rebase'] = "squash"
    # Seconds to wait between retryable merge attempts
    retry_delay: float = Field(default=30.0, ge=0)
    # Retries for `merge` and for the root of `merge-all`
    merge_retries: int = Field(default=0, ge=0)
    # Retries for every child during `merge-all`, sized for CI queue latency
    stack_merge_retries: int = Field(default=20, ge=0)

class ToolConfig(BaseModel):
    """Tool configuration."""
    model_config = ConfigDict(extra="allow")

    # Post reports as PR comments; when False they are printed instead
    comment: bool = True

class StaqdConfig(BaseModel):
    """Full staqd configuration."""
    model_config = ConfigDict(extra="allow")

    repo: RepoConfig = Field(default_factory=RepoConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    tool: ToolConfig = Field(default_factory=ToolConfig)
