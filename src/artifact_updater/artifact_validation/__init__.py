"""
Validation of downloaded artifacts.

This package handles:
1. Structural checks on the archive container and its manifest
2. Verification of archive signatures and signer identities
"""

from .jar_manifest import MANIFEST_NAME, JarManifest
from .jar_signature import JarSignatureVerifier, signer_matches
from .validator import (
    DEFAULT_MARKER_ENTRY,
    MAX_ARTIFACT_SIZE,
    MIN_ARTIFACT_SIZE,
    ArtifactValidator,
)

__all__ = [
    "ArtifactValidator",
    "JarManifest",
    "JarSignatureVerifier",
    "signer_matches",
    "MANIFEST_NAME",
    "DEFAULT_MARKER_ENTRY",
    "MIN_ARTIFACT_SIZE",
    "MAX_ARTIFACT_SIZE",
]
