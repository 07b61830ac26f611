"""Check out (or add) touched files with a command-line version-control tool.

Paths are passed in batches of ``Constants.CHECKOUT_BATCH_SIZE`` to stay under
command-line length limits.
"""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import List, Optional, Sequence

from constants import Constants
from common.batching import BatchOutcome, run_in_batches
from common.logging_utils import extra_context, is_debug_enabled, Timer

logger = logging.getLogger(__name__)


class ToolNotFoundError(RuntimeError):
    """Raised when the checkout tool does not exist."""


class CheckoutCommandError(RuntimeError):
    """Raised when one invocation of the checkout tool fails."""


class CheckoutTool:
    """Thin wrapper around ``<tool> checkout|add <paths...>``."""

    def __init__(self, tool_path: str, batch_size: Optional[int] = None, timeout: Optional[int] = None):
        resolved = tool_path if os.path.isfile(tool_path) else shutil.which(tool_path)
        if not resolved:
            raise ToolNotFoundError(f"Could not find command line tool [{tool_path}]")
        self.tool_path = resolved
        self.batch_size = batch_size or Constants.CHECKOUT_BATCH_SIZE
        self.timeout = timeout or Constants.CHECKOUT_TIMEOUT_SEC

    def _run(self, action: str, paths: List[str]) -> None:
        cmd = [self.tool_path, action, *paths]
        with Timer() as t:
            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                raise CheckoutCommandError(f"{action} failed: {e}") from e

        if is_debug_enabled(logger):
            logger.debug("Checkout tool finished", extra=extra_context(
                event="subprocess", component="checkout", action=action,
                count=len(paths), duration_ms=t.duration_ms(), returncode=result.returncode,
            ))
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise CheckoutCommandError(f"{action} exited with code {result.returncode}: {detail}")

    def _run_batched(self, action: str, paths: Sequence[str]) -> List[BatchOutcome]:
        if not paths:
            return []
        outcomes = run_in_batches(list(paths), self.batch_size, lambda batch: self._run(action, batch))
        failed = sum(1 for o in outcomes if not o.ok)
        logger.info(
            "%s: %d file(s) in %d batch(es), %d failed.",
            action.capitalize(), len(paths), len(outcomes), failed,
        )
        return outcomes

    def checkout(self, paths: Sequence[str]) -> List[BatchOutcome]:
        """Check out existing files for edit."""
        return self._run_batched("checkout", paths)

    def add(self, paths: Sequence[str]) -> List[BatchOutcome]:
        """Add newly created files."""
        return self._run_batched("add", paths)
