"""
Repository list loader for plutohost.

Loads the declarative repos.yaml that names the GitHub repositories whose
notebooks are served, and defines the naming scheme used for working copies
and index entries.

Expected format:

    repositories:
      - owner: username
        repo: repo-name
"""
import re
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ValidationError, field_validator

from plutohost.errors import ConfigError


SEPARATOR = "__"

# GitHub owners: alphanumerics and single inner hyphens, at most 39 chars
OWNER_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9]|-(?=[A-Za-z0-9])){0,38}$")
# GitHub repository names: alphanumerics, '.', '_' and '-', at most 100 chars
REPO_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,100}$")


def encode_component(component: str) -> str:
    """
    Encode an owner or repo name for use in a flat file name.

    Names are kept as-is unless they could blur into the separator, in which
    case every underscore is escaped. GitHub names never contain '%', so the
    escaped form cannot clash with an unescaped one.

    Args:
        component: Owner or repository name

    Returns:
        Encoded component that never contains the separator
    """
    if SEPARATOR in component or component.startswith("_") or component.endswith("_"):
        return component.replace("_", "%5F")
    return component


@dataclass(frozen=True)
class RepositoryRef:
    """A GitHub repository identified by owner and name."""
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def key(self) -> str:
        """Case-folded identity; GitHub treats owner/name case-insensitively."""
        return self.full_name.lower()

    def working_copy_name(self) -> str:
        """Directory name of this repository's working copy."""
        return f"{encode_component(self.owner)}{SEPARATOR}{encode_component(self.name)}"

    def indexed_name(self, file_name: str) -> str:
        """Flat index name for a notebook file from this repository."""
        return f"{self.working_copy_name()}{SEPARATOR}{file_name}"

    def clone_url(self, remote_base_url: str) -> str:
        return f"{remote_base_url.rstrip('/')}/{self.owner}/{self.name}.git"


class RepositoryEntry(BaseModel):
    """One entry of the repositories list."""
    owner: str
    repo: str

    @field_validator("owner", "repo", mode="before")
    @classmethod
    def coerce_scalar(cls, value: Any) -> Any:
        # YAML reads bare numbers as ints; GitHub names may be all digits
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("owner")
    @classmethod
    def check_owner(cls, value: str) -> str:
        if not OWNER_PATTERN.match(value):
            raise ValueError(f"not a valid GitHub owner name: {value!r}")
        return value

    @field_validator("repo")
    @classmethod
    def check_repo(cls, value: str) -> str:
        if value in (".", "..") or not REPO_PATTERN.match(value):
            raise ValueError(f"not a valid GitHub repository name: {value!r}")
        if value.lower().endswith(".git"):
            raise ValueError(f"repository name must not include the .git suffix: {value!r}")
        return value


class ReposFile(BaseModel):
    """Top-level structure of repos.yaml."""
    repositories: List[RepositoryEntry]

    @field_validator("repositories", mode="before")
    @classmethod
    def empty_list_when_blank(cls, value: Any) -> Any:
        # "repositories:" with nothing under it parses as None
        return [] if value is None else value


def parse_repos_config(data: Any, source: Optional[str] = None) -> List[RepositoryRef]:
    """
    Validate parsed YAML and return repository refs in configured order.

    Args:
        data: Result of yaml.safe_load on the config file
        source: Description of where the data came from, for error messages

    Returns:
        List of RepositoryRef, in file order

    Raises:
        ConfigError: If the structure is invalid or a repository is listed twice
    """
    source = source or "repository config"

    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {source}: must be a YAML mapping with a 'repositories' list")
    if "repositories" not in data:
        raise ConfigError(f"Invalid {source}: missing 'repositories' key")

    try:
        parsed = ReposFile.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid {source}: {problems}") from e

    refs: List[RepositoryRef] = []
    seen = {}
    for entry in parsed.repositories:
        ref = RepositoryRef(owner=entry.owner, name=entry.repo)
        if ref.key in seen:
            raise ConfigError(
                f"Invalid {source}: {ref.full_name} is listed more than once "
                f"(first as {seen[ref.key].full_name})"
            )
        seen[ref.key] = ref
        refs.append(ref)

    return refs


def load_repos_config(config_path: Path) -> List[RepositoryRef]:
    """
    Load repository refs from a repos.yaml file.

    Args:
        config_path: Path to repos.yaml

    Returns:
        List of RepositoryRef, in file order

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid
    """
    config_path = Path(config_path)
    if not config_path.is_file():
        raise ConfigError(f"Repository configuration file not found: {config_path}")

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e

    return parse_repos_config(data, source=str(config_path))
