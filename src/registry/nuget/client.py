"""Package metadata resolver: (name, short version) -> strong-name identity.

Each distinct pair is sent to the registry at most once per run. A query
downloads the package together with everything it depends on, so identities of
other wanted packages found in the same download are cached on the way.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from common.fs_utils import make_scratch_dir, remove_scratch_dir
from common.logging_utils import extra_context, is_debug_enabled
from versioning.cache import ResolvedArtifactCache
from versioning.models import StrongNameIdentity

from .assembly import AssemblyInspector
from .cli import NuGetCli, RegistryQueryError, parse_install_output

logger = logging.getLogger(__name__)


def _same_version(left: str, right: str) -> bool:
    return left.strip().lower() == right.strip().lower()


class PackageMetadataResolver:
    """Resolves strong-name identities through a registry query and an artifact inspector.

    The resolver is the only writer of its cache. ``query`` must provide
    ``install(name, version, output_dir) -> str`` and ``inspector`` must provide
    ``inspect(output_dir, name, version) -> StrongNameIdentity | None``.
    """

    def __init__(
        self,
        query: Optional[Any] = None,
        inspector: Optional[Any] = None,
        cache: Optional[ResolvedArtifactCache] = None,
    ):
        self._query = query if query is not None else NuGetCli()
        self._inspector = inspector if inspector is not None else AssemblyInspector()
        self.cache = cache if cache is not None else ResolvedArtifactCache()
        self._count_lock = threading.Lock()
        self.query_count = 0

    def resolve(
        self,
        name: str,
        version: str,
        wanted: Optional[Dict[str, str]] = None,
    ) -> Optional[StrongNameIdentity]:
        """Return the identity of ``name`` at ``version``, querying the registry if needed.

        Args:
            name: Package id
            version: Short package version
            wanted: Lower-cased package name -> version of other packages worth
                caching from the same download; None caches every discovered pair

        Returns:
            The identity, or None if the pair is (now) known to be unresolvable
        """
        identity = self.cache.get(name, version)
        if identity is not None:
            return identity
        if self.cache.is_unresolvable(name, version):
            return None

        with self.cache.lock_for(name, version):
            # Another caller may have finished this pair while we waited.
            identity = self.cache.get(name, version)
            if identity is not None or self.cache.is_unresolvable(name, version):
                return identity
            return self._query_and_inspect(name, version, wanted)

    def discovered(self, name: str, version: str) -> List[Tuple[str, str]]:
        """Packages the registry reported for an earlier query of (name, version)."""
        return self.cache.discovered(name, version)

    def _inspect_into_cache(self, output_dir: str, name: str, version: str) -> None:
        identity = self._inspector.inspect(output_dir, name, version)
        if identity is not None:
            self.cache.store(name, version, identity)
        else:
            self.cache.mark_unresolvable(name, version)

    def _query_and_inspect(
        self,
        name: str,
        version: str,
        wanted: Optional[Dict[str, str]],
    ) -> Optional[StrongNameIdentity]:
        logger.info("Querying registry for [%s] version [%s].", name, version)
        with self._count_lock:
            self.query_count += 1

        output_dir = make_scratch_dir(f"{name}.{version}")
        try:
            try:
                output = self._query.install(name, version, output_dir)
            except RegistryQueryError as e:
                logger.warning("Registry query for [%s %s] failed: %s", name, version, e)
                self.cache.mark_unresolvable(name, version)
                return None

            discovered = parse_install_output(output)
            self.cache.remember_discovered(name, version, discovered)

            target_seen = False
            for found_name, found_version in discovered:
                if found_name.lower() == name.lower():
                    if not _same_version(found_version, version):
                        logger.debug(
                            "Registry reported %s %s while %s was requested; ignoring.",
                            found_name, found_version, version,
                        )
                        continue
                    target_seen = True
                elif wanted is not None:
                    wanted_version = wanted.get(found_name.lower())
                    if wanted_version is None or not _same_version(found_version, wanted_version):
                        continue
                if self.cache.is_known(found_name, found_version):
                    continue
                self._inspect_into_cache(output_dir, found_name, found_version)

            if not target_seen and not self.cache.is_known(name, version):
                # Quiet nuget builds may not echo the package itself.
                self._inspect_into_cache(output_dir, name, version)

            identity = self.cache.get(name, version)
            if identity is None:
                self.cache.mark_unresolvable(name, version)
                logger.warning("No strong-name identity found for [%s %s].", name, version)
            elif is_debug_enabled(logger):
                logger.debug(
                    "Resolved strong-name identity",
                    extra=extra_context(
                        event="resolved",
                        component="resolver",
                        action="resolve",
                        target=f"{name} {version}",
                        full_version=identity.full_version,
                        discovered=len(discovered),
                    ),
                )
            return identity
        finally:
            remove_scratch_dir(output_dir)
