"""
Configuration validation.

Reports problems with an UpdaterConfig, a remote ConfigSource or a raw
artifact registration payload as errors (the configuration cannot work) and
warnings (it works but is probably not what the operator meant).
"""

import logging
import re
from typing import Any, Dict, List, Optional

from artifact_updater.artifact_models.managed_artifact import VERSION_PLACEHOLDER, ManagedArtifact
from artifact_updater.updater_config import ConfigSource, UpdaterConfig
from artifact_updater.updater_logger import UpdaterLogger

REPO_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
KNOWN_CHANNELS = ("stable", "prerelease", "latest")
ARCHIVE_SUFFIXES = (".jar", ".zip")


class ConfigValidationResult:
    """
    Errors and warnings found while validating configuration.
    """

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def has_errors(self) -> bool:
        return bool(self.errors)

    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def is_valid(self) -> bool:
        return not self.has_errors()

    def log_results(self, logger: UpdaterLogger) -> None:
        """Log every error and warning."""
        for error in self.errors:
            logger.log(f"Config validation error: {error}", logging.ERROR)
        for warning in self.warnings:
            logger.log(f"Config validation warning: {warning}", logging.WARNING)


def validate_config(config: Optional[UpdaterConfig]) -> ConfigValidationResult:
    """
    Validate a whole configuration.

    Args:
        config: The configuration to check

    Returns:
        The errors and warnings found
    """
    result = ConfigValidationResult()
    if config is None:
        result.add_error("Configuration is missing")
        return result

    if config.enabled and not config.managed_artifacts:
        result.add_warning("Updater is enabled but no managed artifacts are configured")

    if config.download_timeout_seconds < 10:
        result.add_warning(
            f"Download timeout is very low ({config.download_timeout_seconds}s). Recommended: 30-300s"
        )
    elif config.download_timeout_seconds > 600:
        result.add_warning(
            f"Download timeout is very high ({config.download_timeout_seconds}s). Consider reducing it."
        )

    if config.periodic_check_enabled:
        if config.check_interval_minutes < 5:
            result.add_warning(
                f"Check interval is very frequent ({config.check_interval_minutes} minutes). "
                "This may hit API rate limits."
            )
        elif config.check_interval_minutes > 1440:
            result.add_warning(
                f"Check interval is very long ({config.check_interval_minutes} minutes / "
                f"{config.check_interval_minutes // 60} hours)"
            )

    if config.require_signature and not config.trusted_signers:
        result.add_error("Signatures are required but no trusted signers are configured")

    seen = set()
    for artifact in config.managed_artifacts:
        _validate_artifact(artifact, result)
        if artifact.artifact_id in seen:
            result.add_error(f"Duplicate artifact id found: {artifact.artifact_id}")
        seen.add(artifact.artifact_id)

    if config.config_source is not None:
        source_result = validate_config_source(config.config_source)
        result.errors.extend(source_result.errors)
        result.warnings.extend(source_result.warnings)

    return result


def _validate_artifact(artifact: ManagedArtifact, result: ConfigValidationResult) -> None:
    artifact_id = artifact.artifact_id

    if not REPO_PATTERN.match(artifact.source_repo):
        result.add_error(
            f"Artifact '{artifact_id}' has invalid source_repo format: '{artifact.source_repo}'. "
            "Expected format: 'owner/repo'"
        )

    if not artifact.filename_template.endswith(ARCHIVE_SUFFIXES):
        result.add_warning(
            f"Artifact '{artifact_id}' filename_template should end with one of "
            f"{', '.join(ARCHIVE_SUFFIXES)}: '{artifact.filename_template}'"
        )

    if not artifact.enabled:
        result.add_warning(f"Artifact '{artifact_id}' is disabled")


def validate_artifact_payload(payload: Dict[str, Any]) -> ConfigValidationResult:
    """
    Validate a raw artifact registration before it is parsed.

    Args:
        payload: Loosely-typed registration data (snake_case or camelCase keys)

    Returns:
        The errors and warnings found
    """
    result = ConfigValidationResult()

    def field(*keys: str) -> Any:
        for key in keys:
            if key in payload:
                return payload[key]
        return None

    artifact_id = field("artifact_id", "artifactId")
    if not isinstance(artifact_id, str) or not artifact_id.strip():
        result.add_error("Artifact has no artifact_id specified")
        return result

    source_repo = field("source_repo", "sourceRepo")
    if not isinstance(source_repo, str) or not source_repo.strip():
        result.add_error(f"Artifact '{artifact_id}' has no source_repo specified")
    elif not REPO_PATTERN.match(source_repo.strip()):
        result.add_error(
            f"Artifact '{artifact_id}' has invalid source_repo format: '{source_repo}'. "
            "Expected format: 'owner/repo'"
        )

    template = field("filename_template", "filenameTemplate")
    if not isinstance(template, str) or not template.strip():
        result.add_error(f"Artifact '{artifact_id}' has no filename_template specified")
    elif template.count(VERSION_PLACEHOLDER) != 1:
        result.add_error(
            f"Artifact '{artifact_id}' filename_template must contain exactly one "
            f"{VERSION_PLACEHOLDER} placeholder: '{template}'"
        )

    channel = field("update_channel", "updateChannel")
    if channel is not None and str(channel).strip().lower() not in KNOWN_CHANNELS:
        result.add_warning(
            f"Artifact '{artifact_id}' has unknown update_channel: '{channel}'. "
            "Valid values: 'stable', 'prerelease'"
        )

    return result


def validate_config_source(source: Optional[ConfigSource]) -> ConfigValidationResult:
    """
    Validate a remote configuration source.

    Args:
        source: The source to check

    Returns:
        The errors and warnings found
    """
    result = ConfigValidationResult()
    if source is None:
        result.add_error("Config source is missing")
        return result

    if source.type != "github":
        result.add_error(f"Config source type must be 'github', got: '{source.type}'")

    if not source.repo or not source.repo.strip():
        result.add_error("Config source repo is not specified")
    elif not REPO_PATTERN.match(source.repo):
        result.add_error(
            f"Config source repo has invalid format: '{source.repo}'. Expected format: 'owner/repo'"
        )

    if not source.path or not source.path.strip():
        result.add_error("Config source path is not specified")

    if not source.branch or not source.branch.strip():
        result.add_warning("Config source branch is not specified, defaulting to 'main'")

    return result
