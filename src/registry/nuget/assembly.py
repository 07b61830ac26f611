"""Artifact inspection: read the strong-name identity of a package's assembly."""
from __future__ import annotations

import hashlib
import logging
import os
from typing import Any, Optional

import dnfile
import pefile

from constants import Constants
from versioning.models import StrongNameIdentity

logger = logging.getLogger(__name__)


def find_package_folder(output_dir: str, name: str, version: str) -> Optional[str]:
    """Locate ``<Name>.<Version>`` inside a nuget output directory (case-insensitive)."""
    wanted = f"{name}.{version}".lower()
    try:
        entries = os.listdir(output_dir)
    except OSError:
        return None
    for entry in entries:
        full = os.path.join(output_dir, entry)
        if entry.lower() == wanted and os.path.isdir(full):
            return full
    return None


def find_assembly(package_folder: str, assembly_name: str) -> Optional[str]:
    """Find ``<assembly_name>.dll`` below ``package_folder``.

    Assemblies under ``lib/`` win over other folders (``ref/``, ``tools/``),
    then the shortest path wins.
    """
    wanted = f"{assembly_name}.dll".lower()
    matches = []
    for current, _dirs, files in os.walk(package_folder):
        for file_name in files:
            if file_name.lower() == wanted:
                full = os.path.join(current, file_name)
                rel = os.path.relpath(full, package_folder).replace(os.sep, "/").lower()
                matches.append((0 if rel.startswith("lib/") else 1, len(rel), rel, full))
    if not matches:
        return None
    return sorted(matches)[0][3]


def public_key_token(public_key: bytes) -> str:
    """Derive the 8-byte public-key token (lowercase hex) from a full public key."""
    if not public_key:
        return ""
    digest = hashlib.sha1(public_key).digest()
    return digest[-8:][::-1].hex()


def _heap_value(item: Any) -> Any:
    # Newer dnfile releases wrap heap entries; older ones return raw values.
    return getattr(item, "value", item)


def read_strong_name(dll_path: str) -> Optional[StrongNameIdentity]:
    """Read version, public-key token and culture from an assembly's metadata.

    Returns:
        The identity, or None if the file is not a readable .NET assembly
    """
    try:
        pe = dnfile.dnPE(dll_path)
    except (OSError, pefile.PEFormatError) as e:
        logger.warning("Couldn't read assembly %s: %s", dll_path, e)
        return None
    try:
        net = getattr(pe, "net", None)
        mdtables = getattr(net, "mdtables", None) if net is not None else None
        table = getattr(mdtables, "Assembly", None) if mdtables is not None else None
        if table is None or not table.rows:
            logger.warning("No assembly manifest in %s.", dll_path)
            return None
        row = table.rows[0]
        version = f"{row.MajorVersion}.{row.MinorVersion}.{row.BuildNumber}.{row.RevisionNumber}"
        key = _heap_value(row.PublicKey) or b""
        culture = _heap_value(row.Culture) or ""
        if isinstance(culture, bytes):
            culture = culture.decode("utf-8", errors="replace")
        return StrongNameIdentity(
            full_version=version,
            public_key_token=public_key_token(bytes(key)),
            culture=culture or Constants.NEUTRAL_CULTURE,
        )
    finally:
        pe.close()


class AssemblyInspector:
    """Extracts strong-name identities from downloaded packages."""

    def inspect(self, output_dir: str, name: str, version: str) -> Optional[StrongNameIdentity]:
        """Return the identity of ``name``'s assembly inside a download, or None if not found."""
        folder = find_package_folder(output_dir, name, version)
        if folder is None:
            logger.debug("Package folder %s.%s not found in %s.", name, version, output_dir)
            return None
        dll_path = find_assembly(folder, name)
        if dll_path is None:
            logger.debug("Assembly %s.dll not found in %s.", name, folder)
            return None
        return read_strong_name(dll_path)
