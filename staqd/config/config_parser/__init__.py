"""Config parser logic."""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import yaml

from ...typing import GitInterface

# Get module logger
logger = logging.getLogger(__name__)

SectionConfig = Dict[str, Any]  # yaml can return various types
Config = Dict[str, SectionConfig]

CONFIG_FILE_NAME = ".staqd.yaml"
SECTIONS = ('repo', 'merge', 'tool')

def parse_remote_url(remote_url: str) -> Optional[Tuple[str, str]]:
    """Extract (owner, name) from an SSH or HTTPS remote URL."""
    remote_url = remote_url.strip()
    if not remote_url:
        return None
    if "://" in remote_url:
        # HTTPS format: https://github.com/owner/repo.git
        repo_part = remote_url.split("://", 1)[1].split("/", 1)[-1]
    elif "@" in remote_url and ":" in remote_url:
        # SSH format: git@github.com:owner/repo.git
        repo_part = remote_url.split(":")[-1]
    else:
        return None

    if repo_part.endswith(".git"):
        repo_part = repo_part[:-len(".git")]
    parts = [p for p in repo_part.strip("/").split("/") if p]
    if len(parts) < 2:
        return None
    return parts[-2], parts[-1]

def load_config_file(path: Path) -> Config:
    """Load the sections we know about from a YAML config file."""
    sections: Config = {}
    try:
        with open(path, 'r') as f:
            logger.info(f"Found {path.name}, loading...")
            file_config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.debug(f"No {path.name} found, using defaults")
        return sections

    if not isinstance(file_config, dict):
        return sections
    for section in SECTIONS:
        value = file_config.get(section)
        if isinstance(value, dict):
            sections[section] = value
    logger.debug(f"Config from {path.name}: {sections}")
    return sections

def parse_config(git_cmd: GitInterface, root: Optional[Path] = None) -> Config:
    """Parse config from defaults, the repo config file, env and git remote."""
    config: Config = {
        'repo': {
            'github_remote': 'origin',
            'github_host': 'github.com',
        },
        'merge': {
            'default_method': 'squash',
            'retry_delay': 30,
            'merge_retries': 0,
            'stack_merge_retries': 20,
        },
        'tool': {
            'comment': True,
        },
    }

    root = root or Path.cwd()
    for section, values in load_config_file(root / CONFIG_FILE_NAME).items():
        config[section].update(values)

    repo = config['repo']

    # Actions runners expose the repository as owner/name
    env_repo = os.environ.get("GITHUB_REPOSITORY", "")
    if "/" in env_repo:
        owner, name = env_repo.split("/", 1)
        repo['github_repo_owner'] = owner
        repo['github_repo_name'] = name

    if not repo.get('github_repo_owner') or not repo.get('github_repo_name'):
        try:
            remote_url = git_cmd.run_cmd(f"remote get-url {repo['github_remote']}")
            parsed = parse_remote_url(remote_url)
            if parsed:
                if not repo.get('github_repo_owner'):
                    repo['github_repo_owner'] = parsed[0]
                if not repo.get('github_repo_name'):
                    repo['github_repo_name'] = parsed[1]
        except Exception as e:
            logger.error(f"Failed to parse git remote: {e}")

    return config
