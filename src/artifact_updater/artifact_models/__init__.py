"""
Data models shared across artifact_updater.

This package provides the Pydantic models for managed artifacts and GitHub
release metadata, plus the per-artifact version state the resolver maintains.
"""

from .managed_artifact import (
    VERSION_PLACEHOLDER,
    ManagedArtifact,
    UpdateChannel,
    parse_artifacts,
)
from .release import ReleaseAsset, ReleaseMetadata
from .version_state import VersionState, is_update_available

__all__ = [
    # Artifacts
    "VERSION_PLACEHOLDER",
    "ManagedArtifact",
    "UpdateChannel",
    "parse_artifacts",
    # Releases
    "ReleaseAsset",
    "ReleaseMetadata",
    # Version state
    "VersionState",
    "is_update_available",
]
