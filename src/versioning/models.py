"""Data models for version reconciliation and strong-name resolution."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from constants import Constants

from .compare import compare_versions


class ReconcileMode(Enum):
    """How the authoritative version per dependency is chosen."""
    ALIGNED = "aligned"
    EXPLICIT = "explicit"


class ResolutionState(Enum):
    """Progress of a package usage towards a strong-name identity."""
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    UNRESOLVABLE = "unresolvable"


class ResolutionMode(Enum):
    """How an upgrade spec selects a concrete version."""
    EXACT = "exact"
    RANGE = "range"
    LATEST = "latest"


@dataclass
class VersionSpec:
    """Normalized representation of a version spec and derived behavior flags."""
    raw: str
    mode: ResolutionMode
    include_prerelease: bool


@dataclass
class UpgradeRequest:
    """A package the user asked to pin workspace-wide before reconciliation."""
    name: str
    requested_spec: Optional[VersionSpec]
    raw_token: str
    resolved_version: Optional[str] = None


@dataclass(frozen=True)
class StrongNameIdentity:
    """Full identity of a signed assembly build."""
    full_version: str
    public_key_token: str = ""
    culture: str = Constants.NEUTRAL_CULTURE


@dataclass(frozen=True)
class VersionRange:
    """Interval of versions; a None bound is unbounded on that side."""
    min_version: Optional[str] = None
    min_inclusive: bool = True
    max_version: Optional[str] = None
    max_inclusive: bool = True

    @property
    def is_empty(self) -> bool:
        """True when the lower bound lies above the upper bound."""
        if self.min_version is None or self.max_version is None:
            return False
        order = compare_versions(self.min_version, self.max_version)
        if order != 0:
            return order > 0
        return not (self.min_inclusive and self.max_inclusive)

    def narrow(self, other: "VersionRange") -> "VersionRange":
        """Intersect two ranges: the lower bound rises and the upper bound falls.

        An empty result is returned as-is rather than rejected.
        """
        min_version, min_inclusive = self.min_version, self.min_inclusive
        if other.min_version is not None:
            order = compare_versions(other.min_version, min_version) if min_version is not None else 1
            if order > 0:
                min_version, min_inclusive = other.min_version, other.min_inclusive
            elif order == 0:
                min_inclusive = min_inclusive and other.min_inclusive

        max_version, max_inclusive = self.max_version, self.max_inclusive
        if other.max_version is not None:
            order = compare_versions(other.max_version, max_version) if max_version is not None else -1
            if order < 0:
                max_version, max_inclusive = other.max_version, other.max_inclusive
            elif order == 0:
                max_inclusive = max_inclusive and other.max_inclusive

        return VersionRange(min_version, min_inclusive, max_version, max_inclusive)

    def contains(self, version: str) -> bool:
        """Check whether ``version`` falls inside the range."""
        if self.min_version is not None:
            order = compare_versions(version, self.min_version)
            if order < 0 or (order == 0 and not self.min_inclusive):
                return False
        if self.max_version is not None:
            order = compare_versions(version, self.max_version)
            if order > 0 or (order == 0 and not self.max_inclusive):
                return False
        return True

    def __str__(self) -> str:
        if (
            self.min_version is not None
            and self.min_version == self.max_version
            and self.min_inclusive
            and self.max_inclusive
        ):
            return f"[{self.min_version}]"
        lower = "[" if self.min_inclusive and self.min_version is not None else "("
        upper = "]" if self.max_inclusive and self.max_version is not None else ")"
        return f"{lower}{self.min_version or ''}, {self.max_version or ''}{upper}"


@dataclass
class PackageVersionRecord:
    """A dependency as known within one project or across the workspace.

    The identity triple (full version, public-key token, culture) is only ever
    set together through :meth:`mark_resolved`.
    """
    name: str
    version: Optional[str] = None
    version_range: Optional[VersionRange] = None
    state: ResolutionState = ResolutionState.UNRESOLVED
    identity: Optional[StrongNameIdentity] = field(default=None)

    @property
    def effective_version(self) -> Optional[str]:
        """Pinned version, or the range's lower bound when only a range is known."""
        if self.version:
            return self.version
        if self.version_range is not None:
            return self.version_range.min_version
        return None

    @property
    def full_version(self) -> Optional[str]:
        return self.identity.full_version if self.identity else None

    @property
    def public_key_token(self) -> Optional[str]:
        return self.identity.public_key_token if self.identity else None

    @property
    def culture(self) -> Optional[str]:
        return self.identity.culture if self.identity else None

    def mark_resolved(self, identity: StrongNameIdentity) -> None:
        self.identity = identity
        self.state = ResolutionState.RESOLVED

    def mark_unresolvable(self) -> None:
        self.identity = None
        self.state = ResolutionState.UNRESOLVABLE

    def set_version(self, version: str) -> None:
        """Overwrite the pinned version, dropping any identity tied to the old one."""
        if version != self.version:
            self.version = version
            self.identity = None
            self.state = ResolutionState.UNRESOLVED

    def copy(self) -> "PackageVersionRecord":
        return replace(self)


# Type alias for stable cache lookups: (package name, short version).
PackageKey = Tuple[str, str]
