"""NuGet registry package.

This package provides the NuGet side of binding-redirect reconciliation:
- cli.py: ``nuget install`` registry query and its output parser
- assembly.py: strong-name identity extraction from downloaded assemblies
- client.py: memoizing resolver combining query and inspection
- versions.py: upgrade spec resolution against the V3 registration API
"""

from .assembly import AssemblyInspector, read_strong_name
from .cli import NuGetCli, RegistryQueryError, parse_install_output
from .client import PackageMetadataResolver
from .versions import fetch_versions, pick_version, resolve_upgrade

__all__ = [
    "AssemblyInspector",
    "read_strong_name",
    "NuGetCli",
    "RegistryQueryError",
    "parse_install_output",
    "PackageMetadataResolver",
    "fetch_versions",
    "pick_version",
    "resolve_upgrade",
]
