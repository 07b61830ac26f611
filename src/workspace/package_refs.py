"""Pin ``PackageReference`` items in project files to an upgraded version."""
from __future__ import annotations

import codecs
import logging
import re
from typing import Iterable, List

from common.fs_utils import write_file
from common.logging_utils import extra_context, is_debug_enabled

logger = logging.getLogger(__name__)


def _single_line_pattern(name: str) -> re.Pattern:
    # <PackageReference Include="Name" Version="1.0" ... />
    return re.compile(
        r'(<PackageReference\s+Include="' + re.escape(name) + r'"[^>]*?\sVersion=")[^"]*(")',
        re.IGNORECASE,
    )


def _multi_line_pattern(name: str) -> re.Pattern:
    # <PackageReference Include="Name"><Version>1.0</Version></PackageReference>
    return re.compile(
        r'<PackageReference\s+Include="' + re.escape(name) + r'"[^>]*>\s*<Version>[^<]*</Version>\s*</PackageReference>',
        re.IGNORECASE | re.DOTALL,
    )


def pin_content(content: str, name: str, version: str) -> str:
    """Return ``content`` with every reference to ``name`` pinned to ``version``.

    The multi-line ``<Version>`` child form is collapsed to the single-line form.
    """
    updated = _single_line_pattern(name).sub(lambda m: f"{m.group(1)}{version}{m.group(2)}", content)
    replacement = f'<PackageReference Include="{name}" Version="{version}" />'
    return _multi_line_pattern(name).sub(lambda m: replacement, updated)


def pin_package_references(project_files: Iterable[str], name: str, version: str) -> List[str]:
    """Rewrite the package references of ``name`` in each project file.

    Args:
        project_files: Project file paths
        name: Package id
        version: Version to pin

    Returns:
        Paths of the files that were changed
    """
    changed = []
    for path in project_files:
        try:
            with open(path, "rb") as f:
                raw = f.read()
            bom = codecs.BOM_UTF8 if raw.startswith(codecs.BOM_UTF8) else b""
            content = raw[len(bom):].decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Couldn't read project file %s: %s", path, e)
            continue

        updated = pin_content(content, name, version)
        if updated == content:
            continue
        try:
            write_file(path, bom + updated.encode("utf-8"))
        except OSError as e:
            logger.error("Update of the file [%s] failed: %s", path, e)
            continue

        logger.info("Updated %s to version %s in [%s].", name, version, path)
        if is_debug_enabled(logger):
            logger.debug("Pinned package reference", extra=extra_context(
                event="pinned", component="package_refs", action="pin",
                target=path, package=name, version=version,
            ))
        changed.append(path)
    return changed
