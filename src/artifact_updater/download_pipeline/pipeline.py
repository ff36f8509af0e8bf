"""
Download pipeline implementation.

Stages one task per artifact that needs an update and runs them all under a
fixed concurrency cap: fetch to a temporary file, validate, move into place and
install. Every task ends in a result; no failure of one task stops another.
"""

import asyncio
import logging
from typing import Dict, Optional

from artifact_updater.artifact_models.managed_artifact import ManagedArtifact
from artifact_updater.artifact_models.version_state import VersionState
from artifact_updater.artifact_validation.validator import ArtifactValidator
from artifact_updater.download_pipeline.downloader import ArtifactDownloader, ProgressCallback
from artifact_updater.download_pipeline.installer import ArtifactInstaller
from artifact_updater.download_pipeline.models import (
    DownloadResult,
    DownloadResults,
    DownloadStatus,
    DownloadTask,
)
from artifact_updater.updater_exceptions import (
    ArtifactValidationError,
    InvalidVersionError,
    TransportError,
)
from artifact_updater.updater_logger import UpdaterLogger
from artifact_updater.versioning.semantic_version import SemanticVersion

DEFAULT_MAX_CONCURRENT_DOWNLOADS = 3


class DownloadPipeline:
    """
    Bounded-concurrency fetch, validate and install of staged artifacts.
    """

    def __init__(
        self,
        downloader: ArtifactDownloader,
        validator: ArtifactValidator,
        installer: ArtifactInstaller,
        logger: UpdaterLogger,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS,
        auto_install: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the download pipeline.

        Args:
            downloader: Fetches assets to temporary files and moves them into place
            validator: Checks downloaded files before they are installed
            installer: Retires old copies and records installs
            logger: Logger for progress and error messages
            max_concurrent: Most tasks that may download at the same time
            auto_install: Validate and install after downloading; when off,
                files are only downloaded
            on_progress: Receives download progress of every task
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.downloader = downloader
        self.validator = validator
        self.installer = installer
        self.logger = logger
        self.max_concurrent = max_concurrent
        self.auto_install = auto_install
        self.on_progress = on_progress
        self._tasks: Dict[str, DownloadTask] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._artifact_locks: Dict[str, asyncio.Lock] = {}

    def enqueue(self, artifact: ManagedArtifact, state: VersionState) -> bool:
        """
        Stage a download for an artifact.

        The task is skipped when no download URL is known or the target is below
        the artifact's minimum version. If either version fails to parse the
        download is allowed. Staging the same artifact again replaces its task.

        Args:
            artifact: The artifact to update
            state: Its current version state

        Returns:
            True if a task was staged
        """
        artifact_id = artifact.artifact_id
        target_version = state.target_version
        download_url = state.download_url

        if not target_version or not download_url:
            self.logger.log(f"No download URL for {artifact_id}", logging.ERROR)
            return False

        if artifact.min_version:
            try:
                below_floor = SemanticVersion.parse(target_version) < SemanticVersion.parse(
                    artifact.min_version
                )
            except InvalidVersionError as e:
                # Fail open: an unparseable floor or target does not block the download
                self.logger.log(
                    f"Failed to parse versions for min_version check of {artifact_id}: {e.message}",
                    logging.WARNING,
                )
                below_floor = False

            if below_floor:
                self.logger.log(
                    f"Refusing to download {artifact_id} version {target_version} "
                    f"(below minimum version {artifact.min_version})",
                    logging.WARNING,
                )
                return False

        self._tasks[artifact_id] = DownloadTask(
            artifact, target_version, download_url, previous_version=state.local_version
        )
        self.logger.log(f"Queued download: {artifact_id} version {target_version}", logging.INFO)
        return True

    def clear(self) -> None:
        """Drop all staged tasks."""
        self._tasks.clear()

    def pending(self) -> list:
        return list(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    async def run_all(self) -> DownloadResults:
        """
        Run every staged task.

        At most ``max_concurrent`` tasks download at once, counted across
        overlapping runs. Tasks for the same artifact never run at the same
        time, since they share one temporary file. Returns after all of them
        have finished, successfully or not, and clears the staged tasks.

        Returns:
            Results of all tasks
        """
        tasks = list(self._tasks.values())
        self._tasks.clear()

        if not tasks:
            self.logger.log("No downloads queued", logging.INFO)
            return DownloadResults()

        self.logger.log(f"Starting download of {len(tasks)} artifacts...", logging.INFO)
        semaphore = self._bind_to_running_loop()
        results = await asyncio.gather(*(self._run_with_limit(semaphore, task) for task in tasks))
        download_results = DownloadResults(list(results))

        self.logger.log(
            f"Downloads finished: {download_results.success_count} succeeded, "
            f"{download_results.failed_count} failed",
            logging.INFO,
        )
        return download_results

    def _bind_to_running_loop(self) -> asyncio.Semaphore:
        # asyncio primitives belong to one loop; start over when a new loop runs the pipeline
        loop = asyncio.get_running_loop()
        if self._loop is not loop or self._semaphore is None:
            self._loop = loop
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
            self._artifact_locks = {}
        return self._semaphore

    async def _run_with_limit(self, semaphore: asyncio.Semaphore, task: DownloadTask) -> DownloadResult:
        lock = self._artifact_locks.setdefault(task.artifact_id, asyncio.Lock())
        async with lock, semaphore:
            self.logger.log(f"Downloading {task.artifact_id} (slot acquired)", logging.DEBUG)
            task.status = DownloadStatus.IN_PROGRESS
            result = await self._run_task(task)
            task.status = DownloadStatus.COMPLETED if result.success else DownloadStatus.FAILED
            return result

    async def _run_task(self, task: DownloadTask) -> DownloadResult:
        try:
            temp_path = await self.downloader.fetch(task, self.on_progress)

            if not self.auto_install:
                await asyncio.to_thread(self.downloader.finalize, task, temp_path)
                return DownloadResult(task.artifact_id, task.version, True)

            await asyncio.to_thread(self.validator.validate, temp_path)
            final_path = await asyncio.to_thread(self.downloader.finalize, task, temp_path)
            await asyncio.to_thread(
                self.installer.install, task.artifact, final_path, task.version, task.previous_version
            )
            return DownloadResult(task.artifact_id, task.version, True)

        except TransportError as e:
            error_msg = f"Download failed: {e.message}"
        except ArtifactValidationError as e:
            error_msg = f"Validation failed: {e.reason}"
        except Exception as e:
            error_msg = f"Update failed: {e!r}"

        self.logger.log(f"Failed to update {task.artifact_id} to {task.version}: {error_msg}", logging.ERROR)
        try:
            self.downloader.discard(task)
        except OSError as e:
            self.logger.log(f"Failed to remove temporary file for {task.artifact_id}: {e!r}", logging.WARNING)
        return DownloadResult(task.artifact_id, task.version, False, error_msg)
