"""
Error taxonomy for plutohost.

Every fatal failure in the startup pipeline derives from PlutohostError so
the CLI can turn it into a non-zero exit without catching anything else.
"""


class PlutohostError(Exception):
    """Base class for fatal pipeline errors."""
    pass


class ConfigError(PlutohostError):
    """Raised when the repository config or environment is missing or invalid."""
    pass


class MissingCredentialError(ConfigError):
    """Raised when no access token is supplied."""
    pass


class RepositoryError(PlutohostError):
    """Base for failures tied to a single repository."""

    action = "synchronize"

    def __init__(self, ref, cause):
        self.ref = ref
        self.cause = cause
        super().__init__(f"Failed to {self.action} {ref.full_name}: {cause}")


class CloneError(RepositoryError):
    """Raised when the initial clone of a repository fails."""

    action = "clone"


class SyncError(RepositoryError):
    """Raised when an existing working copy cannot be brought up to date."""

    action = "pull"


class IndexResetError(PlutohostError):
    """Raised when the index directory cannot be cleared."""
    pass


class IndexPublishError(PlutohostError):
    """Raised when a notebook cannot be placed into the index directory."""
    pass


class IndexCollisionError(PlutohostError):
    """Raised when two notebooks map to the same indexed name."""
    pass


class LaunchError(PlutohostError):
    """Raised when the serving process cannot be started."""
    pass
