"""Dot-segment version comparison.

Versions are compared segment by segment: numerically when both segments are
integers, otherwise case-insensitively as text. When all compared segments tie
the version with more segments wins, so ``1.0.0`` sorts above ``1.0``.

Pre-release labels get no special treatment (``1.0.0-beta`` vs ``1.0.0`` is a
plain text comparison of the last segment). Assembly and package versions in a
workspace are almost always purely numeric, which this ordering handles exactly.
"""

from typing import Optional


def _as_int(segment: str) -> Optional[int]:
    try:
        return int(segment)
    except ValueError:
        return None


def _compare_segment(left: str, right: str) -> int:
    lnum, rnum = _as_int(left), _as_int(right)
    if lnum is not None and rnum is not None:
        return (lnum > rnum) - (lnum < rnum)
    lkey, rkey = left.lower(), right.lower()
    return (lkey > rkey) - (lkey < rkey)


def compare_versions(a: Optional[str], b: Optional[str]) -> int:
    """Compare two version strings.

    Args:
        a: Left version (None or empty sorts below any real version)
        b: Right version

    Returns:
        -1, 0 or 1
    """
    if not a or not b:
        return bool(a) - bool(b)

    left, right = a.strip().split("."), b.strip().split(".")
    for lseg, rseg in zip(left, right):
        result = _compare_segment(lseg, rseg)
        if result:
            return result
    return (len(left) > len(right)) - (len(left) < len(right))


def max_version(current: Optional[str], candidate: Optional[str]) -> Optional[str]:
    """Return the greater of two versions, keeping ``current`` on ties."""
    if compare_versions(candidate, current) > 0:
        return candidate
    return current
