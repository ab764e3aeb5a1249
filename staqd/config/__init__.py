"""Config module."""

from typing import Dict, Any
from .models import RepoConfig, MergeConfig, ToolConfig, StaqdConfig

class Config(StaqdConfig):
    """Config object holding repository, merge and tool config.

    Built from the section dict produced by the config parser; every
    section is optional and falls back to model defaults.
    """
    def __init__(self, config: Dict[str, Dict[str, Any]]):
        """Initialize with parsed config dict."""
        super().__init__(
            repo=RepoConfig.model_validate(config.get('repo') or {}),
            merge=MergeConfig.model_validate(config.get('merge') or {}),
            tool=ToolConfig.model_validate(config.get('tool') or {}),
        )

def default_config() -> Config:
    """Get default config without reading the repository."""
    return Config({
        'repo': {
            'github_remote': 'origin',
        },
        'merge': {},
        'tool': {},
    })
