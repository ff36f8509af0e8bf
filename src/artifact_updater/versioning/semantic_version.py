"""
Semantic version parsing and ordering.

Accepts versions like ``1.0.0``, ``v2.3.5``, ``1.2``, ``3`` and
``1.4.0-beta.2+build7``. Ordering only looks at (major, minor, patch); any
pre-release or build suffix is kept in ``original`` but never compared.
"""

import functools
import re
from typing import Optional, Tuple

from artifact_updater.updater_exceptions import InvalidVersionError

VERSION_PATTERN = re.compile(r"v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:[-+].*)?")


@functools.total_ordering
class SemanticVersion:
    """
    A (major, minor, patch) version that remembers the string it was parsed from.
    """

    __slots__ = ("major", "minor", "patch", "original")

    def __init__(self, major: int, minor: int, patch: int, original: str):
        self.major = major
        self.minor = minor
        self.patch = patch
        self.original = original

    @classmethod
    def parse(cls, version_string: Optional[str]) -> "SemanticVersion":
        """
        Parse a version string.

        Args:
            version_string: String such as "v1.2.3", "1.2" or "1"

        Returns:
            The parsed SemanticVersion; missing minor/patch default to 0

        Raises:
            InvalidVersionError: If the string is empty or malformed
        """
        if not version_string:
            raise InvalidVersionError(version_string)

        match = VERSION_PATTERN.fullmatch(version_string.strip())
        if match is None:
            raise InvalidVersionError(version_string)

        major = int(match.group(1))
        minor = int(match.group(2)) if match.group(2) is not None else 0
        patch = int(match.group(3)) if match.group(3) is not None else 0

        return cls(major, minor, patch, version_string)

    @classmethod
    def try_parse(cls, version_string: Optional[str]) -> Optional["SemanticVersion"]:
        """Parse a version string, returning None if it is invalid."""
        try:
            return cls.parse(version_string)
        except InvalidVersionError:
            return None

    @property
    def key(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.key < other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def __repr__(self) -> str:
        return f"SemanticVersion({self}, original={self.original!r})"


def compare(a: SemanticVersion, b: SemanticVersion) -> int:
    """Return negative if a < b, zero if equal, positive if a > b."""
    if a.key == b.key:
        return 0
    return -1 if a.key < b.key else 1


def compare_strings(a: str, b: str) -> int:
    """Parse both strings and compare them; raises InvalidVersionError on bad input."""
    return compare(SemanticVersion.parse(a), SemanticVersion.parse(b))
