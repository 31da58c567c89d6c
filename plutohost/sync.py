"""
Repository synchronization for plutohost.

Keeps one working copy per configured repository under the repos directory.
Local changes are never authoritative: an existing working copy is hard
reset and cleaned before it is fast-forwarded.
"""
import logging
import os
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from plutohost.credentials import AuthContext
from plutohost.errors import CloneError, SyncError
from plutohost.git import GitCommandError, run_git
from plutohost.repos_config import RepositoryRef


logger = logging.getLogger(__name__)

DEFAULT_REMOTE_BASE_URL = "https://github.com"
DEFAULT_BRANCHES = ("main", "master")


@dataclass
class SyncResult:
    """Outcome of synchronizing one repository."""
    ref: RepositoryRef
    path: Path
    action: str  # cloned, updated
    branch: Optional[str] = None


class RepositorySynchronizer:
    """
    Clones or updates working copies for configured repositories.

    Each repository is independent; sync_all can run them in a bounded
    thread pool but still fails the whole run on the first error.
    """

    def __init__(
        self,
        repos_dir: Path,
        auth: AuthContext,
        remote_base_url: str = DEFAULT_REMOTE_BASE_URL,
        branches: Sequence[str] = DEFAULT_BRANCHES,
        jobs: int = 1
    ):
        """
        Initialize synchronizer.

        Args:
            repos_dir: Root directory holding one working copy per repository
            auth: Authentication context for git
            remote_base_url: Base URL that owner/name.git is appended to
            branches: Default branch names to try, in order
            jobs: Maximum number of repositories synchronized at once
        """
        if not branches:
            raise ValueError("At least one branch name is required")
        if jobs < 1:
            raise ValueError("jobs must be at least 1")

        self.repos_dir = Path(repos_dir)
        self.auth = auth
        self.remote_base_url = remote_base_url
        self.branches = tuple(branches)
        self.jobs = jobs

    def working_copy_path(self, ref: RepositoryRef) -> Path:
        return self.repos_dir / ref.working_copy_name()

    def sync(self, ref: RepositoryRef) -> SyncResult:
        """
        Bring one repository's working copy up to date.

        Args:
            ref: Repository to synchronize

        Returns:
            SyncResult describing what was done

        Raises:
            CloneError: If the working copy did not exist and cloning failed
            SyncError: If the existing working copy could not be updated
        """
        path = self.working_copy_path(ref)
        logger.info("Synchronizing repository: %s", ref.full_name)

        if path.exists():
            branch = self._update(ref, path)
            logger.info("Updated %s from branch %s", ref.full_name, branch)
            return SyncResult(ref=ref, path=path, action="updated", branch=branch)

        self._clone(ref, path)
        logger.info("Cloned %s into %s", ref.full_name, path)
        return SyncResult(ref=ref, path=path, action="cloned")

    def _clone(self, ref: RepositoryRef, path: Path):
        """Clone into a hidden staging directory, then move it into place."""
        self.repos_dir.mkdir(parents=True, exist_ok=True)
        staging = self.repos_dir / f".{path.name}.partial"

        # Leftover from an interrupted run
        if staging.exists():
            shutil.rmtree(staging)

        try:
            run_git(['clone', ref.clone_url(self.remote_base_url), str(staging)], self.auth)
            os.replace(staging, path)
        except (GitCommandError, OSError) as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise CloneError(ref, e) from e

    def _update(self, ref: RepositoryRef, path: Path) -> str:
        """Discard local state and fast-forward; returns the branch pulled."""
        # Without its own .git, git would act on an enclosing repository
        if not (path / ".git").is_dir():
            raise SyncError(ref, f"{path} exists but is not a git working copy")

        try:
            run_git(['reset', '--hard', 'HEAD'], self.auth, cwd=path)
            run_git(['clean', '-ffdx'], self.auth, cwd=path)
        except GitCommandError as e:
            raise SyncError(ref, e) from e

        failures = []
        for branch in self.branches:
            try:
                run_git(['pull', '--ff-only', 'origin', branch], self.auth, cwd=path)
                return branch
            except GitCommandError as e:
                logger.info("Pull of %s from branch %s failed, trying next", ref.full_name, branch)
                failures.append(f"{branch}: {e}")

        raise SyncError(ref, "; ".join(failures))

    def sync_all(self, refs: Sequence[RepositoryRef]) -> List[SyncResult]:
        """
        Synchronize every repository, stopping at the first failure.

        Args:
            refs: Repositories in configured order

        Returns:
            SyncResults in the same order as refs

        Raises:
            CloneError, SyncError: From the first repository that failed
        """
        if self.jobs == 1 or len(refs) <= 1:
            return [self.sync(ref) for ref in refs]

        workers = min(self.jobs, len(refs))
        results = {}
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self.sync, ref): ref for ref in refs}
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            except Exception:
                # In-flight syncs finish when the pool shuts down
                for pending in futures:
                    pending.cancel()
                raise

        return [results[ref] for ref in refs]
