"""File-system helpers for read-only files and scratch directories."""
from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile

from constants import Constants

logger = logging.getLogger(__name__)


def clear_readonly(path: str) -> None:
    """Make ``path`` writable; directories are processed recursively."""
    if not os.path.exists(path):
        return
    _make_writable(path)
    if os.path.isdir(path):
        for current, dirs, files in os.walk(path):
            for entry in dirs + files:
                _make_writable(os.path.join(current, entry))


def _make_writable(path: str) -> None:
    mode = os.stat(path).st_mode
    if not mode & stat.S_IWRITE:
        os.chmod(path, mode | stat.S_IWRITE)


def write_file(path: str, content: bytes) -> None:
    """Write ``content`` to ``path`` after clearing any read-only attribute."""
    clear_readonly(path)
    with open(path, "wb") as f:
        f.write(content)


def make_scratch_dir(label: str) -> str:
    """Create a unique scratch directory for one registry download."""
    safe_label = "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in label)
    return tempfile.mkdtemp(prefix=f"{Constants.SCRATCH_PREFIX}{safe_label}_")


def remove_scratch_dir(path: str) -> bool:
    """Delete a scratch directory; failures are logged, never raised.

    Returns:
        True when the directory is gone
    """
    try:
        clear_readonly(path)
        shutil.rmtree(path)
        return True
    except OSError as e:
        logger.warning("Couldn't remove scratch directory %s: %s", path, e)
        return False
