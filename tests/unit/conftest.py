"""
Pytest configuration for unit tests.

Provides local bare git repositories standing in for GitHub remotes.
"""
import os
import shutil
import subprocess
from pathlib import Path

import pytest

from plutohost.credentials import AuthContext


GIT_IDENTITY = {
    "GIT_AUTHOR_NAME": "Test Author",
    "GIT_AUTHOR_EMAIL": "author@example.com",
    "GIT_COMMITTER_NAME": "Test Author",
    "GIT_COMMITTER_EMAIL": "author@example.com",
}


def pytest_configure(config):
    config.addinivalue_line("markers", "requires_git: test shells out to the git CLI")


def pytest_collection_modifyitems(config, items):
    if shutil.which("git") is not None:
        return
    skip = pytest.mark.skip(reason="git not installed")
    for item in items:
        if "requires_git" in item.keywords:
            item.add_marker(skip)


def git(*args, cwd=None) -> str:
    result = subprocess.run(
        ['git', *args],
        cwd=cwd,
        env={**os.environ, **GIT_IDENTITY},
        capture_output=True,
        text=True,
        check=True
    )
    return result.stdout.strip()


class RemoteRepo:
    """A bare repository plus a seeding clone used to push commits into it."""

    def __init__(self, root: Path, owner: str, name: str, branch: str = "main"):
        self.branch = branch
        self.bare = root / owner / f"{name}.git"
        self.seed = root / ".seed" / owner / name

        self.bare.mkdir(parents=True)
        git("init", "--bare", "-q", str(self.bare))
        git("symbolic-ref", "HEAD", f"refs/heads/{branch}", cwd=self.bare)

        self.seed.mkdir(parents=True)
        git("init", "-q", str(self.seed))
        git("symbolic-ref", "HEAD", f"refs/heads/{branch}", cwd=self.seed)
        git("remote", "add", "origin", str(self.bare), cwd=self.seed)

    def commit(self, files, message="update") -> str:
        """Write files (None deletes), commit, push; returns the new sha."""
        for rel, content in files.items():
            path = self.seed / rel
            if content is None:
                path.unlink()
            else:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content)
        git("add", "-A", cwd=self.seed)
        git("commit", "-q", "-m", message, cwd=self.seed)
        git("push", "-q", "origin", f"HEAD:refs/heads/{self.branch}", cwd=self.seed)
        return git("rev-parse", "HEAD", cwd=self.seed)


@pytest.fixture
def remotes_root(tmp_path):
    root = tmp_path / "remotes"
    root.mkdir()
    return root


@pytest.fixture
def make_remote(remotes_root):
    """Factory for remote repositories under remotes_root/<owner>/<name>.git."""
    def _make(owner, name, files=None, branch="main"):
        remote = RemoteRepo(remotes_root, owner, name, branch=branch)
        remote.commit(files or {"README.md": f"# {name}\n"}, message="initial")
        return remote
    return _make


@pytest.fixture
def auth():
    return AuthContext(token="ghp_test123")


@pytest.fixture
def git_cli():
    """Expose the git helper to tests."""
    return git
