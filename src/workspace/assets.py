"""Manifest aggregation from ``project.assets.json`` lockfiles.

A lockfile maps each build target to the packages restored for it::

    {"targets": {"net48": {
        "Newtonsoft.Json/13.0.1": {"type": "package", "dependencies": {}},
        "Polly/7.2.4": {"type": "package",
                        "dependencies": {"System.Memory": "4.5.5",
                                         "Microsoft.Bcl": "[1.0.0, 2.0.0)"}},
        "Shared/1.0.0": {"type": "project"}}}}

Each package's own version and every pinned dependency version merge by
maximum; range-valued dependencies narrow the record's range.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from common.logging_utils import extra_context, is_debug_enabled
from versioning.compare import compare_versions
from versioning.models import PackageVersionRecord
from versioning.ranges import VersionRangeError, is_range_expression, parse_version_range

logger = logging.getLogger(__name__)

PACKAGE_KIND = "package"


class ManifestParseError(ValueError):
    """Raised when a lockfile is unreadable or structurally invalid."""


@dataclass
class AggregationStats:
    """Counts of entries taken from / excluded from one manifest."""

    packages: int = 0
    excluded: int = 0


def load_manifest(path: str) -> Dict[str, Any]:
    """Read and validate a ``project.assets.json`` document.

    Raises:
        ManifestParseError: If the file cannot be read, is not JSON, or has no targets mapping
    """
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestParseError(f"{path}: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("targets"), dict):
        raise ManifestParseError(f"{path}: missing 'targets' mapping")
    return data


def canonical_name(packages: Dict[str, PackageVersionRecord], name: str) -> str:
    """Return the key already used for ``name`` in ``packages``, ignoring case."""
    if name in packages:
        return name
    lowered = name.lower()
    for existing in packages:
        if existing.lower() == lowered:
            return existing
    return name


def _record_for(packages: Dict[str, PackageVersionRecord], name: str) -> PackageVersionRecord:
    # Package ids are case-insensitive; the first spelling seen names the record.
    key = canonical_name(packages, name)
    record = packages.get(key)
    if record is None:
        record = packages[key] = PackageVersionRecord(name=key)
    return record


def merge_version(packages: Dict[str, PackageVersionRecord], name: str, version: str) -> PackageVersionRecord:
    """Raise the pinned version of ``name`` to ``version`` if it is greater.

    Ties keep the existing value.
    """
    record = _record_for(packages, name)
    if record.version is None or compare_versions(version, record.version) > 0:
        record.set_version(version)
    return record


def merge_range(packages: Dict[str, PackageVersionRecord], name: str, expression: str) -> PackageVersionRecord:
    """Narrow the range of ``name`` with ``expression``.

    Raises:
        VersionRangeError: If ``expression`` is malformed
    """
    parsed = parse_version_range(expression)
    record = _record_for(packages, name)
    if record.version_range is None:
        record.version_range = parsed
        return record
    narrowed = record.version_range.narrow(parsed)
    if narrowed.is_empty and not record.version_range.is_empty:
        logger.warning(
            "Version range for %s narrowed to an empty interval %s (was %s, combined with %s).",
            name, narrowed, record.version_range, parsed,
        )
    record.version_range = narrowed
    return record


def _split_entry_key(key: str) -> Optional[tuple]:
    name, sep, version = key.partition("/")
    if not sep or not name or not version:
        return None
    return name, version


def aggregate_manifest(
    document: Dict[str, Any],
    project_packages: Dict[str, PackageVersionRecord],
    workspace_packages: Dict[str, PackageVersionRecord],
    source: str = "<memory>",
) -> AggregationStats:
    """Merge one parsed lockfile into the project and workspace maps."""
    stats = AggregationStats()
    for target_name, entries in document.get("targets", {}).items():
        if not isinstance(entries, dict):
            logger.warning("Skipping malformed target %s in %s.", target_name, source)
            continue
        for key, entry in entries.items():
            parsed = _split_entry_key(key)
            if parsed is None or not isinstance(entry, dict):
                logger.warning("Skipping malformed entry %r in %s.", key, source)
                continue
            if entry.get("type", PACKAGE_KIND) != PACKAGE_KIND:
                stats.excluded += 1
                if is_debug_enabled(logger):
                    logger.debug(
                        "Excluded non-package entry",
                        extra=extra_context(
                            event="decision", component="assets", action="aggregate",
                            target=key, kind=entry.get("type"), outcome="excluded",
                        ),
                    )
                continue

            name, version = parsed
            stats.packages += 1
            for packages in (project_packages, workspace_packages):
                merge_version(packages, name, version)

            dependencies = entry.get("dependencies") or {}
            if not isinstance(dependencies, dict):
                continue
            for dep_name, dep_value in dependencies.items():
                if dep_value is None or not str(dep_value).strip():
                    continue
                dep_value = str(dep_value).strip()
                for packages in (project_packages, workspace_packages):
                    if is_range_expression(dep_value):
                        try:
                            merge_range(packages, dep_name, dep_value)
                        except VersionRangeError as e:
                            logger.warning("Ignoring range for %s in %s: %s", dep_name, source, e)
                            break
                    else:
                        merge_version(packages, dep_name, dep_value)
    return stats


def aggregate_workspace(projects: Iterable[Any]) -> Dict[str, PackageVersionRecord]:
    """Aggregate every project's manifest into per-project maps and one workspace map.

    Projects without a manifest keep an empty package map. A manifest that
    fails to parse is reported and skipped.
    """
    workspace: Dict[str, PackageVersionRecord] = {}
    for project in projects:
        if not project.manifest_path:
            logger.info("No lockfile for project [%s]; run a restore to include it.", project.name)
            continue
        try:
            document = load_manifest(project.manifest_path)
        except ManifestParseError as e:
            logger.warning("Couldn't parse lockfile %s: %s", project.manifest_path, e)
            continue
        stats = aggregate_manifest(document, project.packages, workspace, source=project.manifest_path)
        logger.info("Project [%s]: %d package entries.", project.name, stats.packages)
        if stats.excluded:
            logger.debug("Project [%s]: %d non-package references excluded.", project.name, stats.excluded)
    logger.info("Found %d dependencies across the workspace.", len(workspace))
    return workspace
