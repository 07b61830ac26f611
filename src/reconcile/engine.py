"""Reconciliation decision engine.

Picks the authoritative version of every dependency per project and drives the
resolver to attach strong-name identities:

1. version selection (aligned or explicit mode);
2. pass 1: one resolver call per distinct (name, version) in the workspace map;
3. pass 2: copy identities onto project usages, with one extra resolver call
   for pairs only a single project uses.

Pass 1 always completes before pass 2 starts. The engine is the only writer of
the workspace map.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from common.logging_utils import extra_context, is_debug_enabled
from versioning.cache import make_key
from versioning.compare import compare_versions
from versioning.models import PackageKey, PackageVersionRecord, ReconcileMode, UpgradeRequest
from workspace.assets import canonical_name, merge_version

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """What a run reconciled, skipped and changed."""

    reconciled: Dict[PackageKey, Tuple[str, str, str]] = field(default_factory=dict)
    skipped: Dict[PackageKey, Tuple[str, str]] = field(default_factory=dict)
    changed_files: List[str] = field(default_factory=list)
    created_files: List[str] = field(default_factory=list)
    upgraded_files: List[str] = field(default_factory=list)

    def add_reconciled(self, record: PackageVersionRecord) -> None:
        key = make_key(record.name, record.effective_version or "")
        self.reconciled.setdefault(key, (record.name, record.effective_version or "", record.full_version or ""))

    def add_skipped(self, name: str, version: Optional[str]) -> None:
        key = make_key(name, version or "")
        self.skipped.setdefault(key, (name, version or ""))

    @property
    def touched_files(self) -> List[str]:
        return self.upgraded_files + self.changed_files + self.created_files

    def to_dict(self) -> dict:
        return {
            "reconciled": [
                {"name": n, "version": v, "full_version": f} for n, v, f in self.reconciled.values()
            ],
            "skipped": [{"name": n, "version": v} for n, v in self.skipped.values()],
            "changed_files": list(self.changed_files),
            "created_files": list(self.created_files),
            "upgraded_files": list(self.upgraded_files),
        }


def wanted_versions(workspace: Dict[str, PackageVersionRecord]) -> Dict[str, str]:
    """Lower-cased name -> effective version for every workspace dependency."""
    return {
        name.lower(): record.effective_version
        for name, record in workspace.items()
        if record.effective_version
    }


class ReconciliationEngine:
    """Selects versions and attaches strong-name identities."""

    def __init__(self, resolver, mode: ReconcileMode = ReconcileMode.ALIGNED, max_workers: int = 1):
        """Initialize the engine.

        Args:
            resolver: PackageMetadataResolver (or compatible) owning the caches
            mode: Version selection mode for the whole run
            max_workers: Parallel registry queries in pass 1
        """
        self.resolver = resolver
        self.mode = mode
        self.max_workers = max(1, int(max_workers or 1))

    def select_versions(self, projects: Iterable, workspace: Dict[str, PackageVersionRecord]) -> int:
        """Apply the selection mode to every project usage.

        Returns:
            Number of usages whose version was raised
        """
        if self.mode == ReconcileMode.EXPLICIT:
            logger.info("Explicit mode: keeping per-project versions.")
            return 0

        raised = 0
        for project in projects:
            for name, usage in project.packages.items():
                shared = workspace.get(canonical_name(workspace, name))
                if shared is None or not shared.effective_version:
                    continue
                if compare_versions(shared.effective_version, usage.effective_version) > 0:
                    if is_debug_enabled(logger):
                        logger.debug("Aligned version", extra=extra_context(
                            event="decision", component="engine", action="align",
                            target=name, project=project.name,
                            from_version=usage.effective_version, to_version=shared.effective_version,
                        ))
                    usage.set_version(shared.effective_version)
                    raised += 1
                if usage.version_range is not None and not usage.version_range.contains(usage.effective_version):
                    logger.warning(
                        "Project [%s]: %s %s falls outside its declared range %s.",
                        project.name, name, usage.effective_version, usage.version_range,
                    )
        logger.info("Aligned mode: raised %d package version(s) to the workspace version.", raised)
        return raised

    def seed_upgrades(self, workspace: Dict[str, PackageVersionRecord], upgrades: Sequence[UpgradeRequest]) -> None:
        """Raise workspace versions to pinned upgrades and everything they pull in."""
        for upgrade in upgrades:
            if not upgrade.resolved_version:
                continue
            name = canonical_name(workspace, upgrade.name)
            merge_version(workspace, name, upgrade.resolved_version)
            self._resolve_pair((name, upgrade.resolved_version), None)
            for dep_name, dep_version in self.resolver.discovered(name, upgrade.resolved_version):
                merge_version(workspace, canonical_name(workspace, dep_name), dep_version)

    def _resolve_pair(self, pair: Tuple[str, str], wanted: Optional[Dict[str, str]]) -> None:
        name, version = pair
        try:
            self.resolver.resolve(name, version, wanted=wanted)
        except Exception as e:  # pylint: disable=broad-exception-caught
            # One package must never abort the run.
            logger.error("Unexpected failure resolving [%s %s]: %s", name, version, e)
            self.resolver.cache.mark_unresolvable(name, version)

    def resolve_workspace(self, workspace: Dict[str, PackageVersionRecord]) -> None:
        """Pass 1: resolve every distinct workspace pair once."""
        wanted = wanted_versions(workspace)
        pairs = []
        seen = set()
        for name, record in workspace.items():
            version = record.effective_version
            if not version:
                continue
            key = make_key(name, version)
            if key not in seen:
                seen.add(key)
                pairs.append((name, version))

        logger.info("Resolving %d workspace package version(s).", len(pairs))
        if self.max_workers > 1 and len(pairs) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                list(pool.map(lambda p: self._resolve_pair(p, wanted), pairs))
        else:
            for pair in pairs:
                self._resolve_pair(pair, wanted)

    def resolve_projects(self, projects: Iterable, summary: RunSummary) -> None:
        """Pass 2: attach cached identities to each project's usages."""
        cache = self.resolver.cache
        for project in projects:
            wanted = {n.lower(): r.effective_version for n, r in project.packages.items() if r.effective_version}
            for name, usage in project.packages.items():
                version = usage.effective_version
                if not version:
                    usage.mark_unresolvable()
                    summary.add_skipped(name, None)
                    continue
                identity = cache.get(name, version)
                if identity is None and not cache.is_unresolvable(name, version):
                    self._resolve_pair((name, version), wanted)
                    identity = cache.get(name, version)
                if identity is None:
                    usage.mark_unresolvable()
                    summary.add_skipped(name, version)
                    continue
                usage.mark_resolved(identity)
                summary.add_reconciled(usage)

    def reconcile(
        self,
        projects: Sequence,
        workspace: Dict[str, PackageVersionRecord],
        upgrades: Sequence[UpgradeRequest] = (),
        summary: Optional[RunSummary] = None,
    ) -> RunSummary:
        """Run version selection and both resolution passes."""
        summary = summary if summary is not None else RunSummary()
        if upgrades:
            self.seed_upgrades(workspace, upgrades)
            for project in projects:
                for upgrade in upgrades:
                    usage = project.packages.get(canonical_name(project.packages, upgrade.name))
                    if usage is not None and upgrade.resolved_version:
                        usage.set_version(upgrade.resolved_version)
        self.select_versions(projects, workspace)
        self.resolve_workspace(workspace)
        self.resolve_projects(projects, summary)
        logger.info(
            "Reconciled %d package version(s); %d skipped.",
            len(summary.reconciled), len(summary.skipped),
        )
        return summary
