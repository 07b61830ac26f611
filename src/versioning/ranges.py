"""NuGet interval-notation parsing.

Supported forms::

    1.0          -> 1.0 <= x
    [1.0]        -> x == 1.0
    (1.0, )      -> 1.0 < x
    [1.0, 2.0)   -> 1.0 <= x < 2.0
    (, 2.0]      -> x <= 2.0
"""

from .models import VersionRange


class VersionRangeError(ValueError):
    """Raised when a range expression cannot be parsed."""


def is_range_expression(text: str) -> bool:
    """Return True when a manifest value is written in interval notation."""
    s = text.strip()
    return s.startswith(("[", "(")) or s.endswith(("]", ")"))


def parse_version_range(text: str) -> VersionRange:
    """Parse interval notation into a :class:`VersionRange`.

    Args:
        text: Range expression or bare version

    Returns:
        Structured range

    Raises:
        VersionRangeError: If the expression is malformed
    """
    if text is None or not str(text).strip():
        raise VersionRangeError("empty version range")
    s = str(text).strip()

    if not is_range_expression(s):
        if "," in s:
            raise VersionRangeError(f"unbracketed range '{text}'")
        return VersionRange(min_version=s, min_inclusive=True, max_inclusive=False)

    if len(s) < 2 or s[0] not in "[(" or s[-1] not in "])":
        raise VersionRangeError(f"unbalanced brackets in '{text}'")

    min_inclusive = s[0] == "["
    max_inclusive = s[-1] == "]"
    body = s[1:-1]

    if "," not in body:
        exact = body.strip()
        if not exact or not (min_inclusive and max_inclusive):
            raise VersionRangeError(f"exact range must be '[version]', got '{text}'")
        return VersionRange(exact, True, exact, True)

    parts = body.split(",")
    if len(parts) != 2:
        raise VersionRangeError(f"too many bounds in '{text}'")
    lower, upper = parts[0].strip() or None, parts[1].strip() or None
    if lower is None and upper is None:
        raise VersionRangeError(f"range '{text}' has no bounds")

    # An open side is never inclusive.
    return VersionRange(
        min_version=lower,
        min_inclusive=min_inclusive and lower is not None,
        max_version=upper,
        max_inclusive=max_inclusive and upper is not None,
    )
