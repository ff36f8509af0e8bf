"""
Pydantic models for GitHub release metadata.

Only the fields the updater needs are declared; the rest of the GitHub payload
is ignored.
"""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from artifact_updater.artifact_models.managed_artifact import VERSION_PLACEHOLDER

# "v1.2.0", "V1.2.0" and "release-1.2.0" all derive to "1.2.0"
_TAG_MARKER = re.compile(r"^[A-Za-z]+[-_]?(?=\d)")


class ReleaseAsset(BaseModel):
    """A downloadable file attached to a release."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    download_url: str = Field(..., alias="browser_download_url")
    size: int = 0
    content_type: Optional[str] = None


class ReleaseMetadata(BaseModel):
    """
    A single release of a source repository.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tag_name: str
    name: Optional[str] = None
    prerelease: bool = False
    assets: List[ReleaseAsset] = Field(default_factory=list)
    published_at: Optional[datetime] = None

    @property
    def version(self) -> str:
        """The tag name with its leading marker (such as ``v``) removed."""
        return _TAG_MARKER.sub("", self.tag_name.strip(), count=1)

    def find_asset(self, filename_template: str) -> Optional[ReleaseAsset]:
        """
        Find the asset whose name is the template with this release's version.

        Args:
            filename_template: Template such as "demo-{version}.zip"

        Returns:
            The exactly (case-sensitively) matching asset, or None
        """
        if not filename_template or VERSION_PLACEHOLDER not in filename_template:
            return None

        expected_name = filename_template.replace(VERSION_PLACEHOLDER, self.version)
        for asset in self.assets:
            if asset.name == expected_name:
                return asset
        return None

    def __str__(self) -> str:
        return (
            f"Release(tag={self.tag_name}, prerelease={self.prerelease}, "
            f"assets={len(self.assets)})"
        )
