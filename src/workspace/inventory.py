"""Workspace inventory: enumerate projects and their binding configuration files."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from glob import glob
from typing import Dict, List, Optional

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled
from versioning.models import PackageVersionRecord

logger = logging.getLogger(__name__)


class WorkspaceError(RuntimeError):
    """Raised when the workspace root cannot be inventoried."""


@dataclass
class Project:
    """One buildable unit of the workspace."""

    name: str
    path: str
    manifest_path: Optional[str] = None
    config_paths: List[str] = field(default_factory=list)
    packages: Dict[str, PackageVersionRecord] = field(default_factory=dict)

    @property
    def directory(self) -> str:
        return os.path.dirname(self.path)

    @property
    def needs_new_config(self) -> bool:
        """True when no binding configuration exists yet and one must be created."""
        return not self.config_paths

    @property
    def default_config_path(self) -> str:
        return os.path.join(self.directory, Constants.DEFAULT_CONFIG_FILE)


def _find_config_files(directory: str) -> List[str]:
    """Return app.config/web.config in ``directory``, matched case-insensitively."""
    wanted = {name.lower(): rank for rank, name in enumerate(Constants.CONFIG_FILE_NAMES)}
    found = []
    try:
        entries = os.listdir(directory)
    except OSError as e:
        logger.warning("Couldn't list project directory %s: %s", directory, e)
        return []
    for entry in entries:
        rank = wanted.get(entry.lower())
        full = os.path.join(directory, entry)
        if rank is not None and os.path.isfile(full):
            found.append((rank, full))
    return [path for _, path in sorted(found)]


def _find_manifest(directory: str) -> Optional[str]:
    path = os.path.join(directory, Constants.ASSETS_DIR, Constants.ASSETS_FILE)
    return path if os.path.isfile(path) else None


def discover_projects(root: str) -> List[Project]:
    """Enumerate every project file below ``root``.

    Args:
        root: Workspace root directory

    Returns:
        Projects sorted by path

    Raises:
        WorkspaceError: If ``root`` is not an existing directory
    """
    if not root or not os.path.isdir(root):
        raise WorkspaceError(f"Workspace root does not exist: {root}")

    pattern = os.path.join(root, "**", Constants.PROJECT_FILE_PATTERN)
    project_files = sorted(glob(pattern, recursive=True))

    projects: List[Project] = []
    for project_file in project_files:
        directory = os.path.dirname(project_file)
        project = Project(
            name=os.path.splitext(os.path.basename(project_file))[0],
            path=project_file,
            manifest_path=_find_manifest(directory),
            config_paths=_find_config_files(directory),
        )
        if is_debug_enabled(logger):
            logger.debug(
                "Discovered project",
                extra=extra_context(
                    event="discovered",
                    component="inventory",
                    action="discover_projects",
                    target=project_file,
                    has_manifest=project.manifest_path is not None,
                    config_count=len(project.config_paths),
                ),
            )
        projects.append(project)

    logger.info("Found %d project(s) under %s.", len(projects), root)
    return projects
