"""
Managed artifact configuration.

This package handles:
1. Validating configuration, remote config sources and registration payloads
2. Keeping the registry of managed artifacts
"""

from .config_validator import (
    ConfigValidationResult,
    validate_artifact_payload,
    validate_config,
    validate_config_source,
)
from .registry import ArtifactRegistry

__all__ = [
    "ArtifactRegistry",
    "ConfigValidationResult",
    "validate_artifact_payload",
    "validate_config",
    "validate_config_source",
]
