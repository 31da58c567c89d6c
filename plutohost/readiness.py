"""
Deployment readiness checks.

Answers "will a container started with this environment come up?" without
touching the network: config present and parseable, token set, required
executables installed, data directories writable.
"""
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List

from plutohost.errors import ConfigError
from plutohost.repos_config import load_repos_config
from plutohost.settings import Settings


OK = "ok"
WARN = "warn"
FAIL = "fail"

PLACEHOLDER_OWNERS = {"your-github-username", "username", "username2"}
PLACEHOLDER_TOKEN_PREFIXES = ("your_github", "your-github", "changeme")


@dataclass
class CheckResult:
    """Outcome of one readiness check."""
    name: str
    status: str  # ok, warn, fail
    message: str


def check_repos_config(settings: Settings) -> List[CheckResult]:
    path = settings.repos_config_path
    try:
        refs = load_repos_config(path)
    except ConfigError as e:
        return [CheckResult("repos config", FAIL, str(e))]

    results = [CheckResult("repos config", OK, f"{path}: {len(refs)} repositories")]
    if not refs:
        results.append(CheckResult("repos config", WARN, "No repositories configured"))

    placeholders = [ref.full_name for ref in refs if ref.owner.lower() in PLACEHOLDER_OWNERS]
    if placeholders:
        results.append(CheckResult(
            "repos config", WARN,
            f"Example entries still present, update with your repositories: {', '.join(placeholders)}"
        ))
    return results


def check_token(settings: Settings) -> CheckResult:
    token = (settings.github_token or "").strip()
    if not token:
        return CheckResult("GITHUB_TOKEN", FAIL, "GITHUB_TOKEN environment variable is required")
    if token.lower().startswith(PLACEHOLDER_TOKEN_PREFIXES):
        return CheckResult("GITHUB_TOKEN", WARN, "GITHUB_TOKEN looks like a placeholder, replace with an actual token")
    return CheckResult("GITHUB_TOKEN", OK, "set")


def check_executable(name: str, executable: str) -> CheckResult:
    found = shutil.which(executable)
    if found:
        return CheckResult(name, OK, found)
    return CheckResult(name, FAIL, f"{executable} is not installed or not in PATH")


def check_writable_dir(name: str, directory: Path) -> CheckResult:
    # Walk up to the closest existing ancestor; mkdir -p will create the rest
    probe = Path(directory)
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent

    if not probe.is_dir():
        return CheckResult(name, FAIL, f"{directory}: {probe} is not a directory")
    if not os.access(probe, os.W_OK | os.X_OK):
        return CheckResult(name, FAIL, f"{directory} is not writable")
    return CheckResult(name, OK, str(directory))


def run_checks(settings: Settings) -> List[CheckResult]:
    """Run every readiness check."""
    results = []
    results.extend(check_repos_config(settings))
    results.append(check_token(settings))
    results.append(check_executable("git", "git"))
    results.append(check_executable("julia", settings.julia))
    results.append(check_writable_dir("repos dir", settings.repos_dir))
    results.append(check_writable_dir("index dir", settings.index_dir))
    return results
