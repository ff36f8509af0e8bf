"""
Pydantic model for a managed artifact.

A managed artifact binds a local binary to the GitHub repository it is released
from. Instances are frozen once validated; reconfiguration replaces them
wholesale rather than mutating them.
"""

import logging
from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from artifact_updater.updater_logger import UpdaterLogger

VERSION_PLACEHOLDER = "{version}"


class UpdateChannel(str, Enum):
    """Which release endpoint an artifact follows."""

    STABLE = "stable"
    PRERELEASE = "prerelease"


class ManagedArtifact(BaseModel):
    """
    An artifact kept in sync with its remote releases.

    Fields are accepted either by name (``artifact_id``) or by their camelCase
    wire alias (``artifactId``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    artifact_id: str = Field(..., alias="artifactId", description="Unique artifact id")
    source_repo: str = Field(
        ..., alias="sourceRepo", description="GitHub repository in 'owner/repo' form"
    )
    filename_template: str = Field(
        ...,
        alias="filenameTemplate",
        description="Installed filename with a {version} placeholder",
    )
    enabled: bool = Field(True, description="Whether updates are enabled")
    min_version: Optional[str] = Field(
        None, alias="minVersion", description="Never install anything below this"
    )
    update_channel: UpdateChannel = Field(UpdateChannel.STABLE, alias="updateChannel")
    required: bool = Field(False, description="Whether the artifact must be kept current")

    @field_validator("artifact_id", "source_repo")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("filename_template")
    @classmethod
    def _single_placeholder(cls, value: str) -> str:
        value = value.strip()
        if value.count(VERSION_PLACEHOLDER) != 1:
            raise ValueError(f"must contain exactly one {VERSION_PLACEHOLDER} placeholder")
        return value

    @field_validator("min_version", mode="before")
    @classmethod
    def _empty_min_version(cls, value: Optional[str]) -> Optional[str]:
        # The wire format sends "" for "no floor"
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value.strip()

    @field_validator("update_channel", mode="before")
    @classmethod
    def _normalize_channel(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if value in ("latest", ""):
                return UpdateChannel.STABLE
        return value

    @property
    def include_prerelease(self) -> bool:
        return self.update_channel == UpdateChannel.PRERELEASE

    def filename_for(self, version: str) -> str:
        """Return the installed filename for ``version``."""
        return self.filename_template.replace(VERSION_PLACEHOLDER, version)

    def to_wire(self) -> dict:
        """Serialize with camelCase aliases for pushing to subordinate instances."""
        return self.model_dump(by_alias=True, mode="json")


def parse_artifacts(raw_artifacts: Iterable[Any], logger: UpdaterLogger) -> List[ManagedArtifact]:
    """
    Validate loosely-typed artifact entries, dropping the ones that fail.

    Args:
        raw_artifacts: Dicts from a config file, a pushed payload or an API call
        logger: Logger for rejected entries

    Returns:
        The entries that validated, in their original order
    """
    artifacts: List[ManagedArtifact] = []
    for raw in raw_artifacts:
        if isinstance(raw, ManagedArtifact):
            artifacts.append(raw)
            continue
        try:
            artifacts.append(ManagedArtifact.model_validate(raw))
        except ValidationError as e:
            logger.log(
                f"Removing invalid artifact config {raw!r}: {e.error_count()} error(s), "
                f"{'; '.join(err['msg'] for err in e.errors())}",
                logging.WARNING,
            )
    return artifacts
