"""
Update checks.

This package handles:
1. Detecting which version of each artifact is installed locally
2. Comparing it with the latest remote and any authority-mandated version
3. Deciding which artifacts need an update
"""

from .local_scanner import (
    LocalArtifactScanner,
    detect_local_version,
    template_pattern,
    version_from_filename,
    version_from_metadata,
)
from .version_resolver import VersionResolver

__all__ = [
    "LocalArtifactScanner",
    "VersionResolver",
    "detect_local_version",
    "template_pattern",
    "version_from_filename",
    "version_from_metadata",
]
