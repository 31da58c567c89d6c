"""
Launcher for the PlutoSliderServer process.

The server is an external Julia program; this module only builds its command
line and hands the process over to it, either by replacing the current
process (exec) or by running it as a supervised child.
"""
import logging
import os
import subprocess
import time
from pathlib import Path
from typing import List, Optional

import requests

from plutohost.errors import LaunchError


logger = logging.getLogger(__name__)

READY_TIMEOUT_SECONDS = 300
READY_POLL_SECONDS = 2.0


def build_server_script(index_dir: Path, host: str, port: int) -> str:
    """Julia snippet that serves every notebook in index_dir."""
    return (
        "using PlutoSliderServer\n"
        "PlutoSliderServer.run_directory(\n"
        f"    {_julia_string(str(index_dir))};\n"
        f"    SliderServer_host={_julia_string(host)},\n"
        f"    SliderServer_port={int(port)},\n"
        "    show_secrets=false,\n"
        "    init_with_default_pluto_frontend_environment=true\n"
        ")\n"
    )


def _julia_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


class ServerLauncher:
    """Starts PlutoSliderServer against the notebook index."""

    def __init__(
        self,
        index_dir: Path,
        host: str = "0.0.0.0",
        port: int = 2345,
        julia: str = "julia",
        mode: str = "exec"
    ):
        """
        Initialize launcher.

        Args:
            index_dir: Directory of indexed notebooks to serve
            host: Interface the server binds to
            port: Port the server listens on
            julia: Julia executable name or path
            mode: 'exec' to replace this process, 'supervise' to run as a child
        """
        self.index_dir = Path(index_dir)
        self.host = host
        self.port = port
        self.julia = julia
        self.mode = mode

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def build_command(self) -> List[str]:
        return [self.julia, "-e", build_server_script(self.index_dir, self.host, self.port)]

    def launch(self) -> int:
        """
        Hand control to the server.

        Returns:
            Server exit status (supervise mode only; exec mode never returns)

        Raises:
            LaunchError: If the server cannot be started
        """
        logger.info("Starting PlutoSliderServer at %s serving %s", self.url, self.index_dir)
        if self.mode == "supervise":
            return self._supervise()
        self._exec()
        return 0

    def _exec(self):
        command = self.build_command()
        previous_cwd = os.getcwd()
        try:
            os.chdir(self.index_dir)
            os.execvpe(command[0], command, os.environ)
        except OSError as e:
            os.chdir(previous_cwd)
            raise LaunchError(f"Cannot exec {self.julia}: {e}") from e

    def _supervise(self) -> int:
        try:
            process = subprocess.Popen(self.build_command(), cwd=self.index_dir)
        except OSError as e:
            raise LaunchError(f"Cannot start {self.julia}: {e}") from e

        try:
            self.wait_until_ready(process)
            return process.wait()
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping PlutoSliderServer")
            process.terminate()
            return process.wait()

    def probe_url(self) -> str:
        # A wildcard bind address is not connectable; probe loopback instead
        host = "127.0.0.1" if self.host in ("0.0.0.0", "::", "") else self.host
        return f"http://{host}:{self.port}/"

    def wait_until_ready(
        self,
        process: Optional[subprocess.Popen] = None,
        timeout: float = READY_TIMEOUT_SECONDS,
        interval: float = READY_POLL_SECONDS
    ) -> bool:
        """
        Poll the server until it answers HTTP.

        Any HTTP response counts as ready. Gives up early if the process
        exits, and only warns on timeout since the server may still come up.

        Returns:
            True if the server answered within the timeout
        """
        deadline = time.monotonic() + timeout
        url = self.probe_url()

        while time.monotonic() < deadline:
            if process is not None and process.poll() is not None:
                logger.error("PlutoSliderServer exited with status %s before becoming ready", process.returncode)
                return False
            try:
                requests.get(url, timeout=max(interval, 1.0))
                logger.info("PlutoSliderServer is ready at %s", self.url)
                return True
            except requests.RequestException:
                time.sleep(interval)

        logger.warning("PlutoSliderServer did not answer at %s within %ss", url, timeout)
        return False
