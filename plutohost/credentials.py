"""
Credential binding for git transport.

The access token is turned into an AuthContext once at startup and passed to
every git invocation. Nothing is written to the global git config or to
~/.git-credentials.
"""
import base64
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from plutohost.errors import MissingCredentialError


GIT_USER_NAME = "PlutoSliderServer"
GIT_USER_EMAIL = "pluto@localhost"


@dataclass(frozen=True)
class AuthContext:
    """Authentication state threaded through repository synchronization."""
    token: str = field(repr=False)

    def authorization_header(self) -> str:
        """HTTP Authorization header GitHub accepts for token auth over HTTPS."""
        basic = base64.b64encode(f"x-access-token:{self.token}".encode()).decode()
        return f"Authorization: Basic {basic}"

    def git_env(self, base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """
        Build the environment for a git subprocess.

        The header is passed through GIT_CONFIG_* variables so it never shows
        up in process arguments or in the stored remote URL.

        Args:
            base: Environment to extend (default: os.environ)

        Returns:
            New environment dict
        """
        env = dict(os.environ if base is None else base)
        env.update({
            "GIT_CONFIG_COUNT": "1",
            "GIT_CONFIG_KEY_0": "http.extraHeader",
            "GIT_CONFIG_VALUE_0": self.authorization_header(),
            "GIT_TERMINAL_PROMPT": "0",
            "GIT_AUTHOR_NAME": GIT_USER_NAME,
            "GIT_AUTHOR_EMAIL": GIT_USER_EMAIL,
            "GIT_COMMITTER_NAME": GIT_USER_NAME,
            "GIT_COMMITTER_EMAIL": GIT_USER_EMAIL,
        })
        return env

    def scrub(self, text: str) -> str:
        """Remove the token (raw or header-encoded) from text destined for logs."""
        if not text:
            return text
        text = text.replace(self.token, "***")
        return text.replace(self.authorization_header(), "Authorization: ***")


def bind_credentials(token: Optional[str]) -> AuthContext:
    """
    Bind an access token for all later git operations.

    The token is not verified here; a bad token shows up as a clone or pull
    failure.

    Args:
        token: GitHub access token

    Returns:
        AuthContext to pass to the synchronizer

    Raises:
        MissingCredentialError: If the token is missing or blank
    """
    if token is None or not token.strip():
        raise MissingCredentialError("GITHUB_TOKEN environment variable is required")
    return AuthContext(token=token.strip())
