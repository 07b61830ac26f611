"""Upgrade spec resolution against the NuGet V3 registration API.

Turns ``Newtonsoft.Json:latest``, ``Newtonsoft.Json:13.*`` or
``Newtonsoft.Json:[13.0,14.0)`` into one concrete published version.
"""

import logging
import urllib.parse
from typing import List, Optional, Tuple

import semantic_version

from common.http_client import get_json
from constants import Constants
from versioning.compare import compare_versions
from versioning.models import ResolutionMode, UpgradeRequest
from versioning.ranges import VersionRangeError, is_range_expression, parse_version_range

logger = logging.getLogger(__name__)

HEADERS_JSON = {"Accept": "application/json"}


def _registration_base(service_index: dict) -> Optional[str]:
    for resource in service_index.get("resources", []):
        if str(resource.get("@type", "")).startswith("RegistrationsBaseUrl"):
            return resource.get("@id")
    return None


def fetch_versions(package_id: str) -> List[str]:
    """Fetch every published version of ``package_id`` from the V3 API.

    Returns:
        List of version strings, empty if the registry is unavailable
    """
    status_code, _, index_data = get_json(Constants.REGISTRY_URL_NUGET_V3, headers=HEADERS_JSON)
    if status_code != 200 or not isinstance(index_data, dict):
        return []

    registration_base = _registration_base(index_data)
    if not registration_base:
        return []

    encoded_id = urllib.parse.quote(package_id.lower(), safe="")
    registration_url = f"{registration_base.rstrip('/')}/{encoded_id}/index.json"
    status_code, _, reg_data = get_json(registration_url, headers=HEADERS_JSON)
    if status_code != 200 or not isinstance(reg_data, dict):
        return []

    versions = []
    for page in reg_data.get("items", []):
        page_items = page.get("items")
        if page_items is None and page.get("@id"):
            # Large packages split registrations into pages fetched separately.
            page_status, _, page_data = get_json(page["@id"], headers=HEADERS_JSON)
            page_items = page_data.get("items", []) if page_status == 200 and isinstance(page_data, dict) else []
        for page_item in page_items or []:
            version = page_item.get("catalogEntry", {}).get("version")
            if version:
                versions.append(version)
    return versions


def _is_prerelease(version: str) -> bool:
    return "-" in version


def _highest(candidates: List[str]) -> Optional[str]:
    best = None
    for candidate in candidates:
        if best is None or compare_versions(candidate, best) > 0:
            best = candidate
    return best


def _pick_latest(candidates: List[str]) -> Tuple[Optional[str], Optional[str]]:
    stable = [v for v in candidates if not _is_prerelease(v)]
    if not stable:
        return None, "No stable versions available"
    return _highest(stable), None


def _pick_exact(version: str, candidates: List[str]) -> Tuple[Optional[str], Optional[str]]:
    for candidate in candidates:
        if candidate.lower() == version.lower():
            return candidate, None
    return None, f"Version {version} not found"


def _normalize_wildcard(spec_str: str) -> str:
    """Turn NuGet floating versions (``13.*``, ``13.0.*``) into SimpleSpec form."""
    s = spec_str.strip()
    if s.endswith(".*") and s[0].isdigit():
        return f"=={s}"
    return s


def _pick_range(spec_str: str, candidates: List[str], include_prerelease: bool) -> Tuple[Optional[str], Optional[str]]:
    pool = [v for v in candidates if include_prerelease or not _is_prerelease(v)]

    if is_range_expression(spec_str):
        try:
            interval = parse_version_range(spec_str)
        except VersionRangeError as e:
            return None, f"Invalid version range: {e}"
        matches = [v for v in pool if interval.contains(v)]
    else:
        try:
            spec = semantic_version.SimpleSpec(_normalize_wildcard(spec_str))
        except ValueError:
            try:
                spec = semantic_version.NpmSpec(spec_str)
            except ValueError as e:
                return None, f"Invalid version spec: {e}"
        matches = []
        for v in pool:
            try:
                if semantic_version.Version.coerce(v) in spec:
                    matches.append(v)
            except ValueError:
                continue

    if not matches:
        return None, f"No versions match spec '{spec_str}'"
    return _highest(matches), None


def pick_version(req: UpgradeRequest, candidates: List[str]) -> Tuple[Optional[str], Optional[str]]:
    """Select a concrete version for an upgrade request.

    Returns:
        Tuple of (resolved_version, error_message)
    """
    if not candidates:
        return None, "No versions available"
    if req.requested_spec is None:
        return _pick_latest(candidates)
    spec = req.requested_spec
    if spec.mode == ResolutionMode.EXACT:
        return _pick_exact(spec.raw, candidates)
    return _pick_range(spec.raw, candidates, spec.include_prerelease)


def resolve_upgrade(req: UpgradeRequest) -> Optional[str]:
    """Resolve ``req`` to a published version and store it on the request.

    An exact spec is trusted as-is when the registry cannot be reached.
    """
    candidates = fetch_versions(req.name)
    if not candidates and req.requested_spec is not None and req.requested_spec.mode == ResolutionMode.EXACT:
        logger.warning("Couldn't list versions of %s; using %s as given.", req.name, req.requested_spec.raw)
        req.resolved_version = req.requested_spec.raw
        return req.resolved_version

    version, error = pick_version(req, candidates)
    if version is None:
        logger.error("Couldn't resolve upgrade %s: %s", req.raw_token, error)
        return None
    req.resolved_version = version
    logger.info("Upgrade %s resolved to version %s.", req.raw_token, version)
    return version
