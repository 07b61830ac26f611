"""NuGet command-line registry query: download a package and list what it pulled in."""
from __future__ import annotations

import logging
import re
import subprocess
from typing import List, Optional, Sequence, Tuple

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, Timer

logger = logging.getLogger(__name__)

# nuget.exe -Verbosity detailed reports each package it touches on its own line.
_INSTALL_OUTPUT_RE = re.compile(
    r"(?:(?:Retrieving|Found) package|Successfully installed)"
    r" '(?P<name>[^'\s]+)\s(?P<version>[^']+)'"
)


class RegistryQueryError(RuntimeError):
    """Raised when the registry query cannot be run or exits with an error."""


def parse_install_output(output: str) -> List[Tuple[str, str]]:
    """Extract (name, version) pairs from ``nuget install`` output.

    Duplicates are dropped; first-seen order is kept.
    """
    pairs: List[Tuple[str, str]] = []
    seen = set()
    for match in _INSTALL_OUTPUT_RE.finditer(output or ""):
        name, version = match.group("name"), match.group("version").strip()
        key = (name.lower(), version)
        if key in seen:
            continue
        seen.add(key)
        pairs.append((name, version))
    return pairs


class NuGetCli:
    """Runs ``nuget install`` into a scratch directory."""

    def __init__(
        self,
        command: Optional[str] = None,
        timeout: Optional[int] = None,
        extra_args: Sequence[str] = (),
    ):
        """Initialize the query runner.

        Args:
            command: nuget executable (defaults to Constants.NUGET_COMMAND)
            timeout: Seconds before a query is abandoned
            extra_args: Additional arguments, e.g. ``-Source <feed>``
        """
        self.command = command or Constants.NUGET_COMMAND
        self.timeout = timeout if timeout is not None else Constants.NUGET_TIMEOUT_SEC
        self.extra_args = list(extra_args) if extra_args else list(Constants.NUGET_EXTRA_ARGS)

    def build_command(self, name: str, version: str, output_dir: str) -> List[str]:
        return [
            self.command, "install", name,
            "-Version", version,
            "-OutputDirectory", output_dir,
            "-Verbosity", Constants.NUGET_VERBOSITY,
            "-NonInteractive",
            *self.extra_args,
        ]

    def install(self, name: str, version: str, output_dir: str) -> str:
        """Download ``name`` at ``version`` (and its dependencies) into ``output_dir``.

        Returns:
            Captured standard output

        Raises:
            RegistryQueryError: If nuget is missing, times out, or exits non-zero
        """
        cmd = self.build_command(name, version, output_dir)
        with Timer() as t:
            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            except FileNotFoundError as e:
                raise RegistryQueryError(f"nuget executable not found: {self.command}") from e
            except subprocess.TimeoutExpired as e:
                raise RegistryQueryError(
                    f"nuget install {name} {version} timed out after {self.timeout} seconds"
                ) from e
            except OSError as e:
                raise RegistryQueryError(f"nuget install {name} {version} failed to start: {e}") from e

        if is_debug_enabled(logger):
            logger.debug(
                "Registry query finished",
                extra=extra_context(
                    event="registry_query",
                    component="nuget_cli",
                    action="install",
                    target=f"{name} {version}",
                    status_code=result.returncode,
                    duration_ms=t.duration_ms(),
                ),
            )
        if result.stderr:
            for line in result.stderr.splitlines():
                if line.strip():
                    logger.debug("nuget: %s", line)
        if result.returncode != 0:
            raise RegistryQueryError(
                f"'nuget install {name} -Version {version}' exited with error code {result.returncode}"
            )
        return result.stdout or ""
