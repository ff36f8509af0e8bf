"""
Reader for JAR-style manifest files (META-INF/MANIFEST.MF and META-INF/*.SF).

A manifest is a main section followed by named per-entry sections, each a run
of "Key: value" lines terminated by a blank line. Lines starting with a single
space continue the previous line. The raw bytes of every section are kept
because signature files digest them verbatim.
"""

import base64
import hashlib
import re
from typing import Dict, List, Optional, Tuple

from artifact_updater.updater_exceptions import ParseError

MANIFEST_NAME = "META-INF/MANIFEST.MF"

# Digest attribute prefixes mapped to hashlib names
DIGEST_ALGORITHMS = {
    "SHA-512": "sha512",
    "SHA-384": "sha384",
    "SHA-256": "sha256",
    "SHA-1": "sha1",
    "SHA1": "sha1",
}

_LINE = re.compile(rb"([^\r\n]*)(\r\n|\r|\n|$)")


class ManifestSection:
    """
    One section of a manifest.
    """

    def __init__(self, attributes: Dict[str, str], raw: bytes):
        self.attributes = attributes
        self.raw = raw
        self._lower = {key.lower(): value for key, value in attributes.items()}

    @property
    def name(self) -> Optional[str]:
        return self.get("Name")

    def get(self, key: str) -> Optional[str]:
        """Look up an attribute; attribute names are case-insensitive."""
        return self._lower.get(key.lower())

    def digests(self, suffix: str = "-Digest") -> Dict[str, str]:
        """
        Collect the digest attributes of this section.

        Args:
            suffix: Attribute name suffix, "-Digest" for entries or
                "-Digest-Manifest" for the whole-manifest digest

        Returns:
            Mapping of hashlib algorithm name to base64 digest, for the
            algorithms this reader understands
        """
        found = {}
        for key, value in self.attributes.items():
            if not key.lower().endswith(suffix.lower()):
                continue
            prefix = key[: -len(suffix)].upper()
            algorithm = DIGEST_ALGORITHMS.get(prefix)
            if algorithm is not None:
                found[algorithm] = value
        return found


class JarManifest:
    """
    A parsed manifest.
    """

    def __init__(self, raw: bytes, main: ManifestSection, entries: Dict[str, ManifestSection]):
        self.raw = raw
        self.main = main
        self.entries = entries

    @classmethod
    def parse(cls, data: bytes) -> "JarManifest":
        """
        Parse manifest bytes.

        Raises:
            ParseError: If a line is not a "Key: value" pair or a per-entry
                section has no Name
        """
        sections = [
            ManifestSection(_attributes(lines), data[start:end])
            for start, end, lines in _split_sections(data)
        ]
        if not sections:
            return cls(data, ManifestSection({}, b""), {})

        entries: Dict[str, ManifestSection] = {}
        for section in sections[1:]:
            if not section.name:
                raise ParseError("Manifest section without a Name attribute")
            entries[section.name] = section

        return cls(data, sections[0], entries)


def digest_b64(algorithm: str, data: bytes) -> str:
    """Return the base64 ``algorithm`` digest of ``data``."""
    return base64.b64encode(hashlib.new(algorithm, data).digest()).decode("ascii")


def digests_match(expected: Dict[str, str], data: bytes) -> bool:
    """True if there is at least one expected digest and all of them match ``data``."""
    if not expected:
        return False
    return all(digest_b64(algorithm, data) == value for algorithm, value in expected.items())


def _split_sections(data: bytes) -> List[Tuple[int, int, List[bytes]]]:
    sections = []
    lines: List[bytes] = []
    start = 0
    pos = 0
    while pos < len(data):
        match = _LINE.match(data, pos)
        content, end = match.group(1), match.end()
        if content:
            lines.append(content)
        else:
            # A blank line closes the current section and belongs to it
            if lines:
                sections.append((start, end, lines))
                lines = []
            start = end
        pos = end

    if lines:
        sections.append((start, len(data), lines))
    return sections


def _attributes(lines: List[bytes]) -> Dict[str, str]:
    merged: List[bytes] = []
    for line in lines:
        if line.startswith(b" ") and merged:
            merged[-1] += line[1:]
        else:
            merged.append(line)

    attributes = {}
    for line in merged:
        try:
            text = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Manifest line is not UTF-8: {line!r}") from e

        key, separator, value = text.partition(":")
        if not separator or not key.strip():
            raise ParseError(f"Malformed manifest line: {text!r}")
        attributes[key.strip()] = value.strip()
    return attributes
