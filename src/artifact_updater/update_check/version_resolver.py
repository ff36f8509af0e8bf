"""
Version resolution across all managed artifacts.

The resolver owns one VersionState per artifact id and feeds it the local,
remote and authority-mandated versions as they become known.
"""

import asyncio
import logging
import threading
from typing import Dict, Iterable, List, Optional

from artifact_updater.artifact_models.managed_artifact import ManagedArtifact
from artifact_updater.artifact_models.version_state import VersionState
from artifact_updater.release_source.github_releases import ReleaseSource
from artifact_updater.update_check.local_scanner import LocalArtifactScanner
from artifact_updater.updater_logger import UpdaterLogger


class VersionResolver:
    """
    Merges local, remote and authority versions into update decisions.
    """

    def __init__(
        self,
        release_source: ReleaseSource,
        scanner: LocalArtifactScanner,
        logger: UpdaterLogger,
    ):
        """
        Initialize the resolver.

        Args:
            release_source: Source of remote release metadata
            scanner: Detects locally installed versions
            logger: Logger for check results
        """
        self.release_source = release_source
        self.scanner = scanner
        self.logger = logger
        self._states: Dict[str, VersionState] = {}
        self._lock = threading.Lock()

    def _state(self, artifact_id: str) -> VersionState:
        with self._lock:
            state = self._states.get(artifact_id)
            if state is None:
                state = VersionState(artifact_id)
                self._states[artifact_id] = state
            return state

    def record_local(self, artifact_id: str, version: Optional[str]) -> VersionState:
        state = self._state(artifact_id)
        state.set_local_version(version)
        return state

    def record_remote(
        self, artifact_id: str, version: Optional[str], download_url: Optional[str] = None
    ) -> VersionState:
        state = self._state(artifact_id)
        state.set_remote_version(version, download_url)
        return state

    def record_authority(
        self, artifact_id: str, version: Optional[str], required: bool = False
    ) -> VersionState:
        state = self._state(artifact_id)
        state.set_authority_version(version, required)
        self.logger.log(
            f"Authority requires {artifact_id} version {version} (required={required})",
            logging.INFO,
        )
        return state

    def decide(self, artifact_id: str) -> VersionState:
        """Return the current state of an artifact, creating an empty one if unknown."""
        return self._state(artifact_id)

    def has_state(self, artifact_id: str) -> bool:
        with self._lock:
            return artifact_id in self._states

    def all_states(self) -> Dict[str, VersionState]:
        with self._lock:
            return dict(self._states)

    def with_updates(self) -> List[VersionState]:
        """Return the states that currently have an update available."""
        return [state for state in self.all_states().values() if state.update_available]

    def clear(self) -> None:
        """Forget all version state. Call before a fresh check."""
        with self._lock:
            self._states.clear()

    async def refresh_local(self, artifact: ManagedArtifact) -> VersionState:
        """Re-detect the installed version of an artifact."""
        version = await asyncio.to_thread(self.scanner.find_installed_version, artifact)
        return self.record_local(artifact.artifact_id, version)

    async def check_all(self, artifacts: Iterable[ManagedArtifact]) -> Dict[str, VersionState]:
        """
        Check every enabled artifact against its remote source.

        All lookups are issued together and this returns once each of them has
        finished; a failure for one artifact is logged and does not affect the
        others.

        Args:
            artifacts: Artifacts to check; disabled ones are skipped

        Returns:
            Snapshot of all version states after the check
        """
        enabled = [artifact for artifact in artifacts if artifact.enabled]
        if not enabled:
            self.logger.log("No managed artifacts enabled, skipping update check", logging.INFO)
            return self.all_states()

        self.logger.log(f"Checking {len(enabled)} artifacts for updates...", logging.INFO)
        await asyncio.gather(*(self._check_artifact(artifact) for artifact in enabled))
        return self.all_states()

    async def _check_artifact(self, artifact: ManagedArtifact) -> None:
        artifact_id = artifact.artifact_id
        try:
            await self.refresh_local(artifact)

            release = await self.release_source.latest_release(
                artifact.source_repo, artifact.include_prerelease
            )
            if release is None:
                self.record_remote(artifact_id, None)
                return

            asset = release.find_asset(artifact.filename_template)
            if asset is None:
                self.logger.log(
                    f"No matching asset found for {artifact_id} with template {artifact.filename_template}",
                    logging.WARNING,
                )

            state = self.record_remote(
                artifact_id, release.version, asset.download_url if asset else None
            )
            self.logger.log(
                f"Version comparison for {artifact_id}: local={state.local_version}, "
                f"remote={state.remote_version}, update_available={state.update_available}",
                logging.INFO,
            )
        except Exception as e:
            self.logger.log(f"Failed to check {artifact_id} for updates: {e!r}", logging.ERROR)

    async def resolve_authority_assets(self, artifacts: Iterable[ManagedArtifact]) -> None:
        """
        Find download URLs for authority-mandated versions.

        For every artifact whose target is an authority version without a known
        asset, fetch the release tagged with that version and record its asset.
        """
        pending = []
        for artifact in artifacts:
            if not self.has_state(artifact.artifact_id):
                continue
            state = self.decide(artifact.artifact_id)
            if state.authority_version and state.download_url is None:
                pending.append((artifact, state))

        await asyncio.gather(*(self._resolve_asset(artifact, state) for artifact, state in pending))

    async def _resolve_asset(self, artifact: ManagedArtifact, state: VersionState) -> None:
        version = state.authority_version
        try:
            release = await self.release_source.release_for_tag(artifact.source_repo, version)
            if release is None:
                return
            asset = release.find_asset(artifact.filename_template)
            if asset is None:
                self.logger.log(
                    f"Release {release.tag_name} of {artifact.artifact_id} has no matching asset",
                    logging.WARNING,
                )
                return
            state.add_download_url(version, asset.download_url)
        except Exception as e:
            self.logger.log(
                f"Failed to resolve asset for {artifact.artifact_id} {version}: {e!r}",
                logging.ERROR,
            )
