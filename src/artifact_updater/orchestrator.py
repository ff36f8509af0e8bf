"""
Update orchestration.

The UpdateOrchestrator owns every updater service and runs the update
lifecycle: check all managed artifacts, report what changed, download and
install updates, and apply what a coordinating authority pushes (mandated
versions and whole configurations).

Usage:

    async with UpdateOrchestrator(UpdaterConfig.load("updater.toml", logger), logger) as updater:
        report = await updater.check_for_updates()
        if updater.is_restart_required():
            ...
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Union

import aiohttp
from pydantic import ValidationError

from artifact_updater.artifact_config.config_validator import validate_config, validate_config_source
from artifact_updater.artifact_config.registry import ArtifactRegistry
from artifact_updater.artifact_validation.validator import ArtifactValidator
from artifact_updater.download_pipeline.downloader import ArtifactDownloader, ProgressCallback
from artifact_updater.download_pipeline.install_ledger import STATE_FILE_NAME, InstallLedger
from artifact_updater.download_pipeline.installer import ArtifactInstaller
from artifact_updater.download_pipeline.models import DownloadResults
from artifact_updater.download_pipeline.pipeline import DownloadPipeline
from artifact_updater.release_source.github_releases import API_BASE, RAW_BASE, ReleaseSource
from artifact_updater.release_source.release_cache import ReleaseCache
from artifact_updater.update_check.local_scanner import LocalArtifactScanner
from artifact_updater.update_check.version_resolver import VersionResolver
from artifact_updater.update_events import (
    CheckingStarted,
    DownloadFinished,
    DownloadStarted,
    LoggingEventSink,
    NoUpdates,
    UpdateError,
    UpdateEventSink,
    UpdatesFound,
    UpdateSummary,
)
from artifact_updater.updater_config import (
    AuthorityConfigPayload,
    AuthorityVersionsPayload,
    UpdaterConfig,
)
from artifact_updater.updater_logger import UpdaterLogger


class UpdateCheckReport:
    """
    Outcome of one update check.
    """

    def __init__(
        self,
        updates: Optional[List[UpdateSummary]] = None,
        downloads: Optional[DownloadResults] = None,
    ):
        """
        Args:
            updates: Artifacts found to need an update
            downloads: Results of the downloads that followed, or None if none ran
        """
        self.updates: List[UpdateSummary] = list(updates or [])
        self.downloads = downloads

    @property
    def has_updates(self) -> bool:
        return bool(self.updates)

    def __repr__(self) -> str:
        return f"UpdateCheckReport(updates={self.updates}, downloads={self.downloads!r})"


class UpdateOrchestrator:
    """
    Wires the updater services together and drives the update lifecycle.
    """

    def __init__(
        self,
        config: UpdaterConfig,
        logger: Optional[UpdaterLogger] = None,
        sink: Optional[UpdateEventSink] = None,
        session: Optional[aiohttp.ClientSession] = None,
        api_base: str = API_BASE,
        raw_base: str = RAW_BASE,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Updater configuration
            logger: Logger shared by every service; one is created if omitted
            sink: Receives lifecycle events; defaults to logging them
            session: HTTP session to use; if omitted one is created on start()
                and closed on close()
            api_base: Base URL of the release API
            raw_base: Base URL raw repository files are served from
            on_progress: Receives download progress
        """
        self.config = config
        self.logger = logger if logger is not None else UpdaterLogger()
        self.logger.set_verbose(config.verbose_logging)
        self.sink: UpdateEventSink = sink if sink is not None else LoggingEventSink(self.logger)
        self.api_base = api_base
        self.raw_base = raw_base
        self.on_progress = on_progress

        self._session = session
        self._owns_session = session is None

        self.cache = ReleaseCache()
        self.scanner = LocalArtifactScanner(config.install_dir, self.logger, config.required_marker_entry)
        self.ledger = InstallLedger(config.install_dir / STATE_FILE_NAME, self.logger)
        self.validator = ArtifactValidator(
            self.logger,
            trusted_signers=config.trusted_signers,
            required_marker_entry=config.required_marker_entry,
            require_signature=config.require_signature,
        )
        self.installer = ArtifactInstaller(self.scanner, self.ledger, self.logger)
        self.registry = ArtifactRegistry(self.logger, config)

        self.release_source: Optional[ReleaseSource] = None
        self.resolver: Optional[VersionResolver] = None
        self.downloader: Optional[ArtifactDownloader] = None
        self.pipeline: Optional[DownloadPipeline] = None
        self._check_lock: Optional[asyncio.Lock] = None
        self._download_lock: Optional[asyncio.Lock] = None

        validate_config(config).log_results(self.logger)

    async def start(self) -> None:
        """Open the HTTP session if needed and build the network-bound services."""
        if self.pipeline is not None:
            return

        if self._session is None:
            self._session = aiohttp.ClientSession()

        self.release_source = ReleaseSource(
            self._session, self.cache, self.logger, api_base=self.api_base, raw_base=self.raw_base
        )
        self.resolver = VersionResolver(self.release_source, self.scanner, self.logger)
        self.downloader = ArtifactDownloader(
            self._session,
            self.config.install_dir,
            self.logger,
            timeout_seconds=self.config.download_timeout_seconds,
        )
        self.pipeline = DownloadPipeline(
            self.downloader,
            self.validator,
            self.installer,
            self.logger,
            max_concurrent=self.config.max_concurrent_downloads,
            auto_install=self.config.auto_install,
            on_progress=self.on_progress,
        )
        # One check and one staging of the shared pipeline at a time
        self._check_lock = asyncio.Lock()
        self._download_lock = asyncio.Lock()
        self.logger.log("Update orchestrator started", logging.INFO)

    async def close(self) -> None:
        """Close the HTTP session if this orchestrator opened it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None if self._owns_session else self._session
        self.release_source = None
        self.resolver = None
        self.downloader = None
        self.pipeline = None

    async def __aenter__(self) -> "UpdateOrchestrator":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def register_artifact(self, payload: Union[Dict[str, Any], Any]) -> bool:
        """Register an artifact given as a ManagedArtifact or as a registration mapping."""
        if isinstance(payload, dict):
            return self.registry.register_from_payload(payload)
        return self.registry.register(payload)

    async def check_for_updates(self) -> UpdateCheckReport:
        """
        Run a full update check now.

        Every enabled artifact is checked against its release source. Found
        updates are reported and, when auto_download is on, downloaded.

        Returns:
            The updates found and the download results, if any
        """
        if not self.config.enabled:
            self.logger.log("Updater is disabled, skipping update check", logging.INFO)
            return UpdateCheckReport()

        artifacts = self.registry.enabled_artifacts()
        if not artifacts:
            self.logger.log("No enabled artifacts to check for updates", logging.INFO)
            return UpdateCheckReport()

        await self.start()
        async with self._check_lock:
            self.sink.emit(CheckingStarted(len(artifacts)))

            try:
                await self.resolver.check_all(artifacts)
                await self.resolver.resolve_authority_assets(artifacts)
            except Exception as e:
                self.logger.log(f"Failed to check for updates: {e!r}", logging.ERROR)
                self.sink.emit(UpdateError(f"Failed to check for updates: {e}"))
                return UpdateCheckReport()

            return await self._report_updates()

    async def handle_authority_versions(
        self, payload: Union[AuthorityVersionsPayload, Dict[str, Any]]
    ) -> UpdateCheckReport:
        """
        Apply the versions a coordinating authority mandates.

        Args:
            payload: Mandated versions, as a payload or a plain id -> version mapping

        Returns:
            The updates the mandated versions cause and their download results
        """
        if not isinstance(payload, AuthorityVersionsPayload):
            try:
                payload = AuthorityVersionsPayload.from_mapping(payload)
            except ValidationError as e:
                self.logger.log(f"Ignoring malformed authority versions: {e}", logging.ERROR)
                self.sink.emit(UpdateError("Received malformed version requirements"))
                return UpdateCheckReport()

        self.logger.log(
            f"Received version requirements from authority for {len(payload.versions)} artifacts",
            logging.INFO,
        )
        await self.start()

        for artifact_id, mandated in payload.versions.items():
            self.resolver.record_authority(artifact_id, mandated.version, mandated.required)
            artifact = self.registry.get(artifact_id)
            if artifact is not None:
                await self.resolver.refresh_local(artifact)

        await self.resolver.resolve_authority_assets(self.registry.enabled_artifacts())
        return await self._report_updates()

    async def apply_authority_config(
        self, payload: Union[AuthorityConfigPayload, Dict[str, Any]]
    ) -> Optional[UpdateCheckReport]:
        """
        Apply a configuration pushed by a coordinating authority.

        Artifacts and global settings are replaced, the release cache is
        cleared and, when check_on_authority_join is on, a check follows.

        Args:
            payload: The pushed configuration

        Returns:
            Report of the follow-up check, or None if no check ran
        """
        if not isinstance(payload, AuthorityConfigPayload):
            try:
                payload = AuthorityConfigPayload.model_validate(payload)
            except ValidationError as e:
                self.logger.log(f"Ignoring malformed authority config: {e}", logging.ERROR)
                self.sink.emit(UpdateError("Received malformed configuration"))
                return None

        self.config = self.config.apply_authority_config(payload, self.logger)
        validate_config(self.config).log_results(self.logger)
        self.registry.reload(self.config)

        if self.pipeline is not None:
            self.pipeline.auto_install = self.config.auto_install
        if self.downloader is not None:
            self.downloader.timeout_seconds = self.config.download_timeout_seconds
        self.cache.clear()

        if self.config.check_on_authority_join:
            return await self.check_for_updates()
        return None

    def authority_config_payload(self) -> AuthorityConfigPayload:
        """The configuration this instance pushes when acting as the authority."""
        return AuthorityConfigPayload.from_config(self.config)

    async def refresh_remote_config(self) -> bool:
        """
        Fetch the configured remote config file and apply it.

        Returns:
            True if a remote configuration was fetched and applied
        """
        source = self.config.config_source
        if source is None:
            self.logger.log("No config source configured, using local config", logging.INFO)
            return False

        check = validate_config_source(source)
        check.log_results(self.logger)
        if check.has_errors():
            return False

        await self.start()
        text = await self.release_source.fetch_raw_file(source.repo, source.path, source.effective_branch)
        if text is None:
            self.logger.log("Failed to fetch remote config, using local config", logging.WARNING)
            return False

        try:
            payload = AuthorityConfigPayload.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            self.logger.log(f"Remote config from {source.repo}/{source.path} is invalid: {e}", logging.ERROR)
            self.sink.emit(UpdateError("Remote configuration is invalid"))
            return False

        await self.apply_authority_config(payload)
        self.logger.log(f"Config refreshed from {source.repo}/{source.path}", logging.INFO)
        return True

    async def download_updates(self, updates: List[UpdateSummary]) -> DownloadResults:
        """
        Download and install the given updates.

        Args:
            updates: Updates as reported by a check

        Returns:
            Results of every staged download
        """
        await self.start()
        async with self._download_lock:
            self.pipeline.clear()
            for update in updates:
                artifact = self.registry.get(update.artifact_id)
                if artifact is None:
                    continue
                self.pipeline.enqueue(artifact, self.resolver.decide(update.artifact_id))

            self.sink.emit(DownloadStarted(len(self.pipeline)))
            results = await self.pipeline.run_all()
        self.sink.emit(DownloadFinished(results.success_count, results.failed_count))
        return results

    async def run_periodic_checks(self) -> None:
        """
        Check for updates every check_interval_minutes until cancelled.

        Returns immediately when periodic checks are disabled.
        """
        if not self.config.periodic_check_enabled:
            self.logger.log("Periodic update checks are disabled", logging.DEBUG)
            return

        while True:
            await asyncio.sleep(self.config.check_interval_minutes * 60)
            try:
                await self.check_for_updates()
            except Exception as e:
                self.logger.log(f"Periodic update check failed: {e!r}", logging.ERROR)
                self.sink.emit(UpdateError(f"Periodic update check failed: {e}"))

    async def run_startup_check(self) -> Optional[UpdateCheckReport]:
        """
        Run the check that belongs to host startup.

        Returns:
            The check report, or None when check_on_startup is off
        """
        if not self.config.check_on_startup:
            self.logger.log("Startup update check is disabled", logging.DEBUG)
            return None
        return await self.check_for_updates()

    async def run(self) -> None:
        """Run the startup check, then periodic checks until cancelled."""
        await self.run_startup_check()
        await self.run_periodic_checks()

    def is_restart_required(self) -> bool:
        return self.ledger.is_restart_required()

    def acknowledge_restart(self) -> None:
        """Clear the restart-required flag once the host has restarted."""
        self.ledger.clear_restart_required()

    async def _report_updates(self) -> UpdateCheckReport:
        updates = [
            UpdateSummary(state.artifact_id, state.local_version, state.target_version)
            for state in self.resolver.with_updates()
            if self.registry.is_registered(state.artifact_id)
        ]
        if not updates:
            self.sink.emit(NoUpdates())
            return UpdateCheckReport()

        self.sink.emit(UpdatesFound(updates))
        if not self.config.auto_download:
            return UpdateCheckReport(updates)

        downloads = await self.download_updates(updates)
        return UpdateCheckReport(updates, downloads)
