"""
Thin wrapper around the git CLI.
"""
import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from plutohost.credentials import AuthContext


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 600


class GitCommandError(Exception):
    """Raised when a git command exits non-zero, times out, or cannot start."""

    def __init__(self, args: List[str], returncode: Optional[int], stderr: str):
        self.git_args = args
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"git {' '.join(args)} failed: {detail}")


def run_git(
    args: List[str],
    auth: AuthContext,
    cwd: Optional[Path] = None,
    timeout: int = DEFAULT_TIMEOUT_SECONDS
) -> str:
    """
    Run a git command with the given credentials.

    Args:
        args: Arguments after 'git'
        auth: Authentication context providing the subprocess environment
        cwd: Working directory
        timeout: Seconds before the command is killed

    Returns:
        Captured stdout

    Raises:
        GitCommandError: On non-zero exit, timeout, or missing git binary
    """
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        result = subprocess.run(
            ['git', *args],
            cwd=cwd,
            env=auth.git_env(),
            capture_output=True,
            text=True,
            timeout=timeout
        )
    except subprocess.TimeoutExpired:
        raise GitCommandError(args, None, f"timed out after {timeout}s")
    except OSError as e:
        # Missing git binary or missing cwd
        raise GitCommandError(args, None, f"cannot start git: {e}")

    if result.returncode != 0:
        raise GitCommandError(args, result.returncode, auth.scrub(result.stderr))

    return result.stdout
