"""
Configuration for plutohost.

Loads configuration from environment variables.
"""
import os
from pathlib import Path
from typing import Mapping, Optional, Tuple

from plutohost.errors import ConfigError
from plutohost.indexer import PUBLISH_MODES


LAUNCH_MODES = ("exec", "supervise")


def _positive_int(env: Mapping[str, str], name: str, default: int, maximum: Optional[int] = None) -> int:
    raw = env.get(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < 1 or (maximum is not None and value > maximum):
        bounds = f"between 1 and {maximum}" if maximum else "at least 1"
        raise ConfigError(f"{name} must be {bounds}, got {value}")
    return value


def _choice(env: Mapping[str, str], name: str, default: str, choices: Tuple[str, ...]) -> str:
    value = env.get(name, default).strip().lower()
    if value not in choices:
        raise ConfigError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
    return value


class Settings:
    """Runtime settings for one pipeline run."""

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        """
        Load settings from environment.

        Args:
            env: Environment mapping (default: os.environ)

        Raises:
            ConfigError: If a value is present but malformed
        """
        env = os.environ if env is None else env

        # Checked by bind_credentials, not here
        self.github_token = env.get("GITHUB_TOKEN")

        # Data layout
        self.data_dir = Path(env.get("DATA_DIR", "/data"))
        self.repos_dir = Path(env.get("REPOS_DIR", str(self.data_dir / "repos")))
        self.index_dir = Path(env.get("INDEX_DIR", str(self.data_dir / "index")))
        self.repos_config_path = Path(
            env.get("REPOS_CONFIG_PATH", str(self.data_dir / "config" / "repos.yaml"))
        )

        # Serving process
        self.server_host = env.get("SERVER_HOST", "0.0.0.0")
        self.server_port = _positive_int(env, "SERVER_PORT", 2345, maximum=65535)
        self.julia = env.get("PLUTOHOST_JULIA", "julia")
        self.launch_mode = _choice(env, "PLUTOHOST_LAUNCH_MODE", "exec", LAUNCH_MODES)

        # Synchronization
        self.sync_jobs = _positive_int(env, "PLUTOHOST_SYNC_JOBS", 1)
        self.remote_base_url = env.get("PLUTOHOST_REMOTE_BASE_URL", "https://github.com")
        self.branches = tuple(
            b.strip() for b in env.get("PLUTOHOST_BRANCHES", "main,master").split(",") if b.strip()
        )
        if not self.branches:
            raise ConfigError("PLUTOHOST_BRANCHES must name at least one branch")

        # Indexing
        self.publish_mode = _choice(env, "PLUTOHOST_PUBLISH_MODE", "symlink", PUBLISH_MODES)


def get_settings() -> Settings:
    """Get settings from the process environment."""
    return Settings()
