"""Sandbox fixtures for end-to-end tests.

Each test gets a bare repository standing in for the hosted remote, a
developer clone used to build branches, a work clone that staqd operates
in, and a scratch clone the fake repository uses to land merges.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Generator, List

import git
import pytest

from staqd.config import Config
from staqd.git import RealGit
from staqd.github import GitHubClient
from staqd.tests.fakes import FakeRepo, make_config

logger = logging.getLogger(__name__)


def configure(repo: git.Repo) -> None:
    with repo.config_writer() as cw:
        cw.set_value("user", "name", "Staqd Test")
        cw.set_value("user", "email", "staqd@example.com")
        cw.set_value("commit", "gpgsign", "false")


@dataclass
class Sandbox:
    """Repositories and clients for one test."""
    root: Path
    remote: git.Repo
    dev: git.Repo
    work_dir: Path
    fake: FakeRepo
    config: Config = field(default_factory=make_config)

    @property
    def git_cmd(self) -> RealGit:
        return RealGit(self.config, repo_dir=str(self.work_dir))

    @property
    def github(self) -> GitHubClient:
        return GitHubClient(self.config, repo=self.fake)

    def commit(self, files: Dict[str, str], message: str) -> str:
        """Commit files on the developer clone's current branch."""
        for name, content in files.items():
            (Path(self.dev.working_dir) / name).write_text(content)
        self.dev.git.add(*files.keys())
        self.dev.git.commit("-m", message)
        return self.dev.head.commit.hexsha

    def branch(self, name: str, base: str, commits: List[Dict[str, str]]) -> str:
        """Create name on top of the remote base, add commits and push it."""
        self.dev.git.fetch("origin")
        self.dev.git.checkout("-B", name, f"origin/{base}")
        for i, files in enumerate(commits):
            self.commit(files, f"{name}: change {i + 1}")
        self.dev.git.push("--force", "origin", name)
        return self.tip(name)

    def extend(self, name: str, files: Dict[str, str]) -> str:
        """Add one commit to an existing remote branch."""
        self.dev.git.fetch("origin")
        self.dev.git.checkout("-B", name, f"origin/{name}")
        self.commit(files, f"{name}: follow-up")
        self.dev.git.push("origin", name)
        return self.tip(name)

    def tip(self, branch: str) -> str:
        return self.remote.git.rev_parse(f"refs/heads/{branch}")

    def merge_base(self, a: str, b: str) -> str:
        return self.remote.git.merge_base(f"refs/heads/{a}", f"refs/heads/{b}")

    def count(self, base: str, head: str) -> int:
        """Commits on head not reachable from base."""
        return int(self.remote.git.rev_list("--count", f"refs/heads/{base}..refs/heads/{head}"))

    def show(self, branch: str, path: str) -> str:
        return self.remote.git.show(f"refs/heads/{branch}:{path}")

    def files(self, branch: str) -> List[str]:
        return self.remote.git.ls_tree("--name-only", f"refs/heads/{branch}").splitlines()


@pytest.fixture
def sandbox(tmp_path: Path) -> Generator[Sandbox, None, None]:
    remote_dir = tmp_path / "remote.git"
    remote = git.Repo.init(remote_dir, bare=True)
    remote.git.symbolic_ref("HEAD", "refs/heads/main")

    dev = git.Repo.init(tmp_path / "dev")
    configure(dev)
    dev.git.symbolic_ref("HEAD", "refs/heads/main")
    (tmp_path / "dev" / "README.md").write_text("# widgets\n")
    (tmp_path / "dev" / "x.txt").write_text("base\n")
    dev.git.add("README.md", "x.txt")
    dev.git.commit("-m", "Initial commit")
    dev.create_remote("origin", str(remote_dir))
    dev.git.push("origin", "main")

    work = git.Repo.clone_from(str(remote_dir), str(tmp_path / "work"))
    configure(work)
    scratch = git.Repo.clone_from(str(remote_dir), str(tmp_path / "scratch"))
    configure(scratch)

    fake = FakeRepo(remote_dir=str(remote_dir), scratch_dir=str(tmp_path / "scratch"))
    logger.info(f"Sandbox ready in {tmp_path}")
    yield Sandbox(root=tmp_path, remote=remote, dev=dev, work_dir=tmp_path / "work", fake=fake)
