"""
Registry of managed artifacts.

Artifacts come from configuration or from programmatic registration. Loosely
typed registration payloads are validated into ManagedArtifact here and never
passed further as raw mappings.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from artifact_updater.artifact_config.config_validator import validate_artifact_payload
from artifact_updater.artifact_models.managed_artifact import ManagedArtifact
from artifact_updater.updater_config import UpdaterConfig
from artifact_updater.updater_logger import UpdaterLogger


class ArtifactRegistry:
    """
    All artifacts the updater manages, keyed by artifact id.
    """

    def __init__(self, logger: UpdaterLogger, config: Optional[UpdaterConfig] = None):
        """
        Initialize the registry.

        Args:
            logger: Logger for registrations
            config: Configuration to load artifacts from
        """
        self.logger = logger
        self._artifacts: Dict[str, ManagedArtifact] = {}
        if config is not None:
            self.reload(config)

    def reload(self, config: UpdaterConfig) -> None:
        """Replace every registration with the artifacts of ``config``."""
        self._artifacts = {}
        for artifact in config.managed_artifacts:
            self._artifacts[artifact.artifact_id] = artifact
            self.logger.log(f"Registered artifact from config: {artifact.artifact_id}", logging.DEBUG)
        self.logger.log(f"Loaded {len(self._artifacts)} artifacts from configuration", logging.INFO)

    def register(self, artifact: ManagedArtifact) -> bool:
        """
        Register an artifact, replacing any earlier one with the same id.

        Returns:
            True once registered
        """
        self._artifacts[artifact.artifact_id] = artifact
        self.logger.log(f"Registered artifact via API: {artifact.artifact_id}", logging.INFO)
        return True

    def register_from_payload(self, payload: Any) -> bool:
        """
        Register an artifact from loosely-typed registration data.

        Args:
            payload: Mapping with artifact_id, source_repo and filename_template
                (snake_case or camelCase) plus optional enabled, min_version,
                update_channel and required

        Returns:
            True if the payload was valid and registered
        """
        if not isinstance(payload, dict):
            self.logger.log(f"Ignoring registration payload of type {type(payload).__name__}", logging.WARNING)
            return False

        check = validate_artifact_payload(payload)
        if check.has_errors():
            self.logger.log(
                f"Incomplete registration data {payload!r}: {'; '.join(check.errors)}",
                logging.WARNING,
            )
            return False
        check.log_results(self.logger)

        try:
            artifact = ManagedArtifact.model_validate(payload)
        except ValidationError as e:
            self.logger.log(
                f"Failed to parse registration data {payload!r}: "
                f"{'; '.join(err['msg'] for err in e.errors())}",
                logging.ERROR,
            )
            return False

        return self.register(artifact)

    def get(self, artifact_id: str) -> Optional[ManagedArtifact]:
        return self._artifacts.get(artifact_id)

    def all_artifacts(self) -> List[ManagedArtifact]:
        return list(self._artifacts.values())

    def enabled_artifacts(self) -> List[ManagedArtifact]:
        return [artifact for artifact in self._artifacts.values() if artifact.enabled]

    def is_registered(self, artifact_id: str) -> bool:
        return artifact_id in self._artifacts

    def clear(self) -> None:
        self._artifacts.clear()

    def __len__(self) -> int:
        return len(self._artifacts)
