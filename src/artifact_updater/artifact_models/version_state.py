"""
Per-artifact version state.

A VersionState merges three independently arriving versions (the one
installed locally, the latest remote release and the one mandated by a
coordinating authority) into a single update decision. The derived
``update_available`` flag is recomputed synchronously on every mutation, so a
reader never sees it out of step with its inputs.
"""

from typing import Dict, Optional

from artifact_updater.updater_exceptions import InvalidVersionError
from artifact_updater.versioning.semantic_version import SemanticVersion


def is_update_available(target: Optional[str], local: Optional[str]) -> bool:
    """
    Decide whether ``target`` should replace ``local``.

    Args:
        target: Version the artifact should be at, or None if unknown
        local: Version currently installed, or None if nothing is installed

    Returns:
        True if a target exists and nothing is installed, the target is newer,
        or (when either side is not a valid version) the two strings differ
    """
    if not target:
        return False
    if not local:
        return True

    try:
        return SemanticVersion.parse(target) > SemanticVersion.parse(local)
    except InvalidVersionError:
        return target != local


class VersionState:
    """
    Version information tracked for one managed artifact.
    """

    def __init__(self, artifact_id: str):
        """
        Initialize an empty state.

        Args:
            artifact_id: Id of the artifact this state belongs to
        """
        self.artifact_id = artifact_id
        self._local_version: Optional[str] = None
        self._remote_version: Optional[str] = None
        self._authority_version: Optional[str] = None
        self._required = False
        self._download_urls: Dict[str, str] = {}
        self._update_available = False

    @property
    def local_version(self) -> Optional[str]:
        return self._local_version

    @property
    def remote_version(self) -> Optional[str]:
        return self._remote_version

    @property
    def authority_version(self) -> Optional[str]:
        return self._authority_version

    @property
    def required(self) -> bool:
        return self._required

    @property
    def update_available(self) -> bool:
        return self._update_available

    @property
    def target_version(self) -> Optional[str]:
        """The authority-mandated version if there is one, else the remote latest."""
        if self._authority_version:
            return self._authority_version
        return self._remote_version

    @property
    def download_url(self) -> Optional[str]:
        """Download URL of the asset for the current target version, if known."""
        target = self.target_version
        if target is None:
            return None
        return self._download_urls.get(target)

    def set_local_version(self, version: Optional[str]) -> None:
        self._local_version = version or None
        self._recompute()

    def set_remote_version(self, version: Optional[str], download_url: Optional[str] = None) -> None:
        self._remote_version = version or None
        if self._remote_version and download_url:
            self._download_urls[self._remote_version] = download_url
        self._recompute()

    def set_authority_version(self, version: Optional[str], required: bool = False) -> None:
        self._authority_version = version or None
        self._required = bool(required) if self._authority_version else False
        self._recompute()

    def add_download_url(self, version: str, download_url: str) -> None:
        """Remember where the asset for ``version`` can be downloaded from."""
        self._download_urls[version] = download_url

    def _recompute(self) -> None:
        self._update_available = is_update_available(self.target_version, self._local_version)

    def __repr__(self) -> str:
        return (
            f"VersionState(id={self.artifact_id}, local={self._local_version}, "
            f"remote={self._remote_version}, authority={self._authority_version}, "
            f"target={self.target_version}, update_available={self._update_available})"
        )
