"""
Configuration parameters for artifact_updater.

Configuration is read from a JSON or TOML file. Keys may be written in
snake_case or in the camelCase used on the wire. A missing file yields the
minimal configuration (no managed artifacts, which a coordinating authority
may push later); a malformed one is reported as a ConfigError and also falls
back to the minimal configuration.

Example TOML:

    [updater]
    auto_install = true
    install_dir = "mods"
    trusted_signers = ["CN=updater"]

    [[updater.managed_artifacts]]
    artifact_id = "demo"
    source_repo = "owner/demo"
    filename_template = "demo-{version}.jar"
"""

import json
import logging
import pathlib
from typing import Any, Dict, List, Optional, Union

try:
    import tomllib
except ModuleNotFoundError:
    # Python < 3.11
    import tomli as tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from artifact_updater.artifact_models.managed_artifact import ManagedArtifact, parse_artifacts
from artifact_updater.artifact_validation.validator import DEFAULT_MARKER_ENTRY
from artifact_updater.updater_exceptions import ConfigError
from artifact_updater.updater_logger import UpdaterLogger

_ARTIFACT_KEYS = ("managed_artifacts", "managedArtifacts")


class ConfigSource(BaseModel):
    """
    A remote configuration file kept in a GitHub repository.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = "github"
    repo: Optional[str] = None
    path: Optional[str] = None
    branch: Optional[str] = None

    @property
    def effective_branch(self) -> str:
        return self.branch or "main"


class UpdaterConfig(BaseModel):
    """
    Configuration parameters
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = True
    auto_download: bool = Field(True, alias="autoDownload")
    auto_install: bool = Field(True, alias="autoInstall")
    check_on_startup: bool = Field(True, alias="checkOnStartup")
    check_on_authority_join: bool = Field(True, alias="checkOnAuthorityJoin")
    check_interval_minutes: int = Field(60, alias="checkIntervalMinutes")
    periodic_check_enabled: bool = Field(False, alias="periodicCheckEnabled")
    download_timeout_seconds: int = Field(30, alias="downloadTimeoutSeconds")
    verbose_logging: bool = Field(False, alias="verboseLogging")
    max_concurrent_downloads: int = Field(3, ge=1, alias="maxConcurrentDownloads")
    install_dir: pathlib.Path = Field(pathlib.Path("mods"), alias="installDir")
    managed_artifacts: List[ManagedArtifact] = Field(default_factory=list, alias="managedArtifacts")
    trusted_signers: List[str] = Field(default_factory=list, alias="trustedSigners")
    required_marker_entry: str = Field(DEFAULT_MARKER_ENTRY, alias="requiredMarkerEntry")
    require_signature: bool = Field(False, alias="requireSignature")
    config_source: Optional[ConfigSource] = Field(None, alias="configSource")
    authority_provided: bool = Field(False, exclude=True)

    @classmethod
    def minimal(cls) -> "UpdaterConfig":
        """Configuration with no managed artifacts."""
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], logger: UpdaterLogger) -> "UpdaterConfig":
        """
        Build a configuration from loosely-typed data.

        Invalid managed artifact entries are logged and dropped; the rest of the
        data must validate.

        Raises:
            ValidationError: If a global setting is invalid
        """
        data = dict(data)
        raw_artifacts: List[Any] = []
        for key in _ARTIFACT_KEYS:
            raw_artifacts.extend(data.pop(key, None) or [])

        config = cls.model_validate(data)
        config.managed_artifacts = parse_artifacts(raw_artifacts, logger)
        return config

    @classmethod
    def load(cls, path: Union[str, pathlib.Path], logger: UpdaterLogger) -> "UpdaterConfig":
        """
        Load the configuration from a JSON or TOML file.

        Args:
            path: Config file; ".toml" files are read as TOML, anything else as JSON
            logger: Logger for load problems

        Returns:
            The loaded configuration, or the minimal one if the file is missing or malformed
        """
        path = pathlib.Path(path)
        if not path.exists():
            logger.log(
                f"Config file {path} not found, using minimal config until one is pushed",
                logging.INFO,
            )
            return cls.minimal()

        try:
            data = _read_config_file(path)
            config = cls.from_dict(data, logger)
        except (OSError, ValueError, ValidationError, ConfigError) as e:
            error = e if isinstance(e, ConfigError) else ConfigError(f"Failed to load config from {path}: {e}")
            logger.log(f"{error.message}; using minimal config", logging.ERROR)
            return cls.minimal()

        logger.log(
            f"Loaded configuration from {path}: {len(config.managed_artifacts)} managed artifacts",
            logging.INFO,
        )
        return config

    def save(self, path: Union[str, pathlib.Path]) -> None:
        """Write the configuration as JSON with camelCase keys."""
        path = pathlib.Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(by_alias=True, mode="json"), f, indent=2)

    def enabled_artifacts(self) -> List[ManagedArtifact]:
        return [artifact for artifact in self.managed_artifacts if artifact.enabled]

    def apply_authority_config(
        self, payload: "AuthorityConfigPayload", logger: UpdaterLogger
    ) -> "UpdaterConfig":
        """
        Return a copy of this configuration with an authority's settings applied.

        The artifact list and global settings are replaced wholesale; local-only
        settings (install directory, signers, marker entry) are kept.
        """
        artifacts = parse_artifacts(payload.managed_artifacts, logger)
        logger.log(
            f"Applying configuration from authority: {len(artifacts)} managed artifacts, "
            f"auto_download={payload.auto_download}, auto_install={payload.auto_install}",
            logging.INFO,
        )
        return self.model_copy(
            update={
                "managed_artifacts": artifacts,
                "auto_download": payload.auto_download,
                "auto_install": payload.auto_install,
                "check_interval_minutes": payload.check_interval_minutes,
                "periodic_check_enabled": payload.periodic_check_enabled,
                "download_timeout_seconds": payload.download_timeout_seconds,
                "authority_provided": True,
            }
        )


class AuthorityConfigPayload(BaseModel):
    """
    Configuration a coordinating authority pushes to subordinate instances.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    managed_artifacts: List[Dict[str, Any]] = Field(default_factory=list, alias="managedArtifacts")
    auto_download: bool = Field(True, alias="autoDownload")
    auto_install: bool = Field(True, alias="autoInstall")
    check_interval_minutes: int = Field(60, alias="checkIntervalMinutes")
    periodic_check_enabled: bool = Field(False, alias="periodicCheckEnabled")
    download_timeout_seconds: int = Field(30, alias="downloadTimeoutSeconds")

    @classmethod
    def from_config(cls, config: UpdaterConfig) -> "AuthorityConfigPayload":
        """Build the payload an authority sends for its own configuration."""
        return cls(
            managed_artifacts=[artifact.to_wire() for artifact in config.managed_artifacts],
            auto_download=config.auto_download,
            auto_install=config.auto_install,
            check_interval_minutes=config.check_interval_minutes,
            periodic_check_enabled=config.periodic_check_enabled,
            download_timeout_seconds=config.download_timeout_seconds,
        )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class MandatedVersion(BaseModel):
    """A version an authority requires of one artifact."""

    version: str
    required: bool = False


class AuthorityVersionsPayload(BaseModel):
    """
    Versions an authority mandates, keyed by artifact id.

    Values may be full objects ({"version": "1.2.0", "required": true}) or bare
    version strings.
    """

    versions: Dict[str, MandatedVersion] = Field(default_factory=dict)

    @field_validator("versions", mode="before")
    @classmethod
    def _bare_versions(cls, value):
        if isinstance(value, dict):
            return {
                key: {"version": item} if isinstance(item, str) else item
                for key, item in value.items()
            }
        return value

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "AuthorityVersionsPayload":
        """Build the payload from a plain id -> version mapping."""
        if "versions" in mapping and isinstance(mapping["versions"], dict):
            return cls.model_validate(mapping)
        return cls.model_validate({"versions": mapping})

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def _read_config_file(path: pathlib.Path) -> Dict[str, Any]:
    if path.suffix.lower() == ".toml":
        with open(path, "rb") as f:
            data = tomllib.load(f)
        # Settings may sit at the top level or under an [updater] table
        if isinstance(data.get("updater"), dict):
            data = data["updater"]
    else:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain an object, got {type(data).__name__}")
    return data
