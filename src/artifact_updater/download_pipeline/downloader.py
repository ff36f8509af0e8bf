"""
Streaming download of a single artifact.

Handles fetching the asset body into a temporary file in the install directory
and moving it to its final name once the whole body has arrived.
"""

import asyncio
import logging
import os
import pathlib
from typing import Callable, Optional

import aiohttp

from artifact_updater.download_pipeline.models import DownloadProgress, DownloadTask
from artifact_updater.updater_exceptions import TransportError
from artifact_updater.updater_logger import UpdaterLogger

DEFAULT_DOWNLOAD_TIMEOUT_SECONDS = 30
CHUNK_SIZE = 64 * 1024
USER_AGENT = "artifact-updater/1.0"

ProgressCallback = Callable[[DownloadProgress], None]


class ArtifactDownloader:
    """
    Downloads artifact assets into the install directory.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        install_dir: pathlib.Path,
        logger: UpdaterLogger,
        timeout_seconds: float = DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
        chunk_size: int = CHUNK_SIZE,
    ):
        """
        Initialize the downloader.

        Args:
            session: Shared HTTP session
            install_dir: Directory temporary and final files are written to
            logger: Logger for download progress and errors
            timeout_seconds: Bound on a whole download
            chunk_size: Size of the chunks the body is streamed in
        """
        self.session = session
        self.install_dir = pathlib.Path(install_dir)
        self.logger = logger
        self.timeout_seconds = timeout_seconds
        self.chunk_size = chunk_size

    def temp_path(self, task: DownloadTask) -> pathlib.Path:
        return self.install_dir / f".{task.artifact_id}-update.tmp"

    def final_path(self, task: DownloadTask) -> pathlib.Path:
        return self.install_dir / task.artifact.filename_for(task.version)

    async def fetch(
        self, task: DownloadTask, on_progress: Optional[ProgressCallback] = None
    ) -> pathlib.Path:
        """
        Stream the task's asset into its temporary file.

        Args:
            task: The download task
            on_progress: Called after each chunk when the server declared a length

        Returns:
            Path of the completed temporary file

        Raises:
            TransportError: On timeouts, connection failures, non-2xx statuses
                or a body shorter than its declared length
        """
        self.install_dir.mkdir(parents=True, exist_ok=True)
        temp_path = self.temp_path(task)

        self.logger.log(
            f"Downloading {task.artifact_id} version {task.version} from {task.download_url}",
            logging.INFO,
        )

        try:
            async with self.session.get(
                task.download_url,
                headers={"User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if not 200 <= response.status < 300:
                    raise TransportError(f"HTTP response code: {response.status}", status=response.status)

                total = response.content_length
                downloaded = 0
                # File I/O stays off the event loop
                out = await asyncio.to_thread(open, temp_path, "wb")
                try:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        await asyncio.to_thread(out.write, chunk)
                        downloaded += len(chunk)
                        if on_progress is not None and total:
                            on_progress(DownloadProgress(task.artifact_id, downloaded, total))
                finally:
                    await asyncio.to_thread(out.close)

                if total is not None and downloaded < total:
                    raise TransportError(f"Incomplete download: {downloaded} of {total} bytes")
        except TransportError:
            _remove_quietly(temp_path)
            raise
        except asyncio.TimeoutError as e:
            _remove_quietly(temp_path)
            raise TransportError(f"Download timed out after {self.timeout_seconds}s") from e
        except aiohttp.ClientError as e:
            _remove_quietly(temp_path)
            raise TransportError(f"Download failed: {e!r}") from e

        return temp_path

    def finalize(self, task: DownloadTask, temp_path: pathlib.Path) -> pathlib.Path:
        """Move a completed temporary file to the task's final filename."""
        final_path = self.final_path(task)
        os.replace(temp_path, final_path)
        self.logger.log(f"Downloaded {task.artifact_id} to {final_path.name}", logging.INFO)
        return final_path

    def discard(self, task: DownloadTask) -> None:
        """Remove the task's temporary file if it is still there."""
        _remove_quietly(self.temp_path(task))


def _remove_quietly(path: pathlib.Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
