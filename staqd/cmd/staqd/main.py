"""CLI entry point."""

import os
import sys
import click
import logging
from typing import Any, Callable, Dict, Optional, Tuple
from click import Context

from ...config import Config, default_config
from ...config.config_parser import parse_config
from ...git import RealGit
from ...github import GitHubClient, find_github_token
from ...commands import StackCommands, parse_comment_command
from ...typing import ConfigError, GitError, StaqdError

# Get module logger
logger = logging.getLogger(__name__)

class AliasedGroup(click.Group):
    """Command group with support for aliases."""

    def __init__(self, name: Optional[str] = None, commands: Optional[Dict[str, click.Command]] = None, **attrs: Any) -> None:
        """Initialize with aliases map."""
        super().__init__(name, commands, **attrs)
        self.aliases: Dict[str, str] = {}

    def add_alias(self, alias: str, command: str) -> None:
        """Add an alias for a command."""
        self.aliases[alias] = command

    def get_command(self, ctx: Context, cmd_name: str) -> Optional[click.Command]:
        """Get a command by name, supporting aliases."""
        if cmd_name in self.aliases:
            cmd_name = self.aliases[cmd_name]
        return super().get_command(ctx, cmd_name)

@click.group(cls=AliasedGroup)
@click.pass_context
def cli(ctx: Context) -> None:
    """staqd - merge and restack stacked pull requests."""
    ctx.ensure_object(dict)

def common_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command."""
    options = [
        click.option('--pr', 'number', type=int, required=True, help="Pull request to operate on"),
        click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
                     help='Run as if staqd was started in DIRECTORY instead of the current working directory'),
        click.option('--repo', help="Repository as owner/name (defaults to GITHUB_REPOSITORY or the origin remote)"),
        click.option('--no-comment', is_flag=True, help="Print reports instead of commenting on the pull request"),
        click.option('--retry-delay', type=float, help="Seconds between merge retries"),
        click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn

def setup(directory: Optional[str], repo: Optional[str], no_comment: bool,
          retry_delay: Optional[float]) -> Tuple[Config, RealGit, GitHubClient]:
    """Setup config, git and GitHub clients."""
    if directory:
        os.chdir(directory)

    git_cmd = RealGit(default_config())
    try:
        git_cmd.run_cmd("rev-parse --git-dir")
    except GitError as e:
        logger.error(f"{e}")
        sys.exit(2)

    cfg = parse_config(git_cmd)
    if repo:
        if "/" not in repo:
            raise click.BadParameter("expected owner/name", param_hint="--repo")
        owner, name = repo.split("/", 1)
        cfg['repo']['github_repo_owner'] = owner
        cfg['repo']['github_repo_name'] = name
    if no_comment:
        cfg['tool']['comment'] = False
    if retry_delay is not None:
        cfg['merge']['retry_delay'] = retry_delay
    config = Config(cfg)
    git_cmd = RealGit(config)

    from github import Auth, Github
    from ...github.adapters import PyGithubAdapter

    token = find_github_token(config.repo.github_host)
    if not token:
        raise ConfigError("No GitHub token found. Set GITHUB_TOKEN or log in with 'gh auth login'")
    if config.repo.github_host == "github.com":
        real_github = Github(auth=Auth.Token(token))
    else:
        real_github = Github(base_url=f"https://{config.repo.github_host}/api/v3", auth=Auth.Token(token))
    github = GitHubClient(config, github_client=PyGithubAdapter(real_github))
    return config, git_cmd, github

def execute(command: str, number: int, directory: Optional[str], repo: Optional[str], no_comment: bool,
            retry_delay: Optional[float], verbose: int, force: bool = False, skip: Optional[str] = None) -> None:
    """Run one command and exit non-zero if it did not fully succeed."""
    from ... import setup_logging
    setup_logging(verbose)

    try:
        config, git_cmd, github = setup(directory, repo, no_comment, retry_delay)
        ok = StackCommands(config, github, git_cmd).run(command, number, force=force, skip=skip)
    except StaqdError as e:
        logger.error(f"Error during {command}: {e}")
        sys.exit(1)
    if not ok:
        sys.exit(1)

@cli.command(name="help", help="Show the stack commands and this pull request's stack")
@common_options
def help_cmd(number: int, directory: Optional[str], repo: Optional[str], no_comment: bool,
             retry_delay: Optional[float], verbose: int) -> None:
    """Help command."""
    execute('help', number, directory, repo, no_comment, retry_delay, verbose)

@cli.command(name="restack", help="Rebase the children of a pull request onto its current branch")
@common_options
@click.option('--skip', help="Commit below which child history is inherited (defaults to the PR's head)")
def restack(number: int, directory: Optional[str], repo: Optional[str], no_comment: bool,
            retry_delay: Optional[float], verbose: int, skip: Optional[str]) -> None:
    """Restack command."""
    execute('restack', number, directory, repo, no_comment, retry_delay, verbose, skip=skip)

@cli.command(name="merge", help="Merge a pull request and restack its children")
@common_options
def merge(number: int, directory: Optional[str], repo: Optional[str], no_comment: bool,
          retry_delay: Optional[float], verbose: int) -> None:
    """Merge command."""
    execute('merge', number, directory, repo, no_comment, retry_delay, verbose)

@cli.command(name="merge-all", help="Merge a pull request and its whole stack")
@common_options
@click.option('--force', is_flag=True, help="Skip the approval check")
def merge_all(number: int, directory: Optional[str], repo: Optional[str], no_comment: bool,
              retry_delay: Optional[float], verbose: int, force: bool) -> None:
    """Merge-all command."""
    execute('merge-all', number, directory, repo, no_comment, retry_delay, verbose, force=force)

@cli.command(name="discover", help="Rebuild stack metadata from base branches")
@common_options
def discover(number: int, directory: Optional[str], repo: Optional[str], no_comment: bool,
             retry_delay: Optional[float], verbose: int) -> None:
    """Discover command."""
    execute('discover', number, directory, repo, no_comment, retry_delay, verbose)

@cli.command(name="guide", help="Create, refresh or remove the stack guide comment")
@common_options
def guide(number: int, directory: Optional[str], repo: Optional[str], no_comment: bool,
          retry_delay: Optional[float], verbose: int) -> None:
    """Guide command."""
    execute('guide', number, directory, repo, no_comment, retry_delay, verbose)

@cli.command(name="run", help="Run the stack command contained in a comment (e.g. 'st merge-all --force')")
@common_options
@click.argument('text')
def run(number: int, directory: Optional[str], repo: Optional[str], no_comment: bool,
        retry_delay: Optional[float], verbose: int, text: str) -> None:
    """Comment dispatch command."""
    parsed = parse_comment_command(text)
    if parsed is None:
        from ... import setup_logging
        setup_logging(verbose)
        logger.info("Not a stack command, nothing to do")
        return
    command, force = parsed
    execute(command, number, directory, repo, no_comment, retry_delay, verbose, force=force)

def main() -> None:
    """Main entry point."""
    cli.add_alias('mergeall', 'merge-all')
    cli(obj={})

if __name__ == "__main__":
    main()
