"""Token parsing utilities for upgrade requests."""

from typing import Optional, Tuple

from .models import ResolutionMode, UpgradeRequest, VersionSpec


def tokenize_rightmost_colon(s: str) -> Tuple[str, Optional[str]]:
    """Return (identifier, spec or None) using the rightmost-colon rule."""
    s = s.strip()
    if ':' not in s:
        return s, None
    parts = s.rsplit(':', 1)
    identifier = parts[0].strip()
    spec_part = parts[1].strip() if len(parts) > 1 else ''
    spec = spec_part if spec_part else None
    return identifier, spec


def _determine_resolution_mode(spec: str) -> ResolutionMode:
    """Determine resolution mode from spec string."""
    range_ops = ['^', '~', '*', 'x', '<', '>', '=', '!', '[', ']', '(', ')', ',']
    if any(op in spec.lower() for op in range_ops):
        return ResolutionMode.RANGE
    return ResolutionMode.EXACT


def _determine_include_prerelease(spec: str) -> bool:
    """Prerelease candidates are only considered when the spec names one."""
    return '-' in spec


def parse_upgrade_token(token: str) -> UpgradeRequest:
    """Parse a ``Name:spec`` CLI token into an UpgradeRequest.

    A missing spec or ``latest`` selects the newest stable version.
    """
    name, spec = tokenize_rightmost_colon(token)
    if not name:
        raise ValueError(f"Missing package name in '{token}'")

    if spec is None or spec.lower() == 'latest':
        requested_spec = None
    else:
        mode = _determine_resolution_mode(spec)
        requested_spec = VersionSpec(raw=spec, mode=mode, include_prerelease=_determine_include_prerelease(spec))

    return UpgradeRequest(name=name, requested_spec=requested_spec, raw_token=token)
