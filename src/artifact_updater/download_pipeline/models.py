"""
Tasks and results of the download pipeline.
"""

from typing import List, Optional

from artifact_updater.artifact_models.managed_artifact import ManagedArtifact


class DownloadStatus:
    """Enumeration of download statuses."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class DownloadTask:
    """
    A staged download of one artifact version.
    """

    def __init__(
        self,
        artifact: ManagedArtifact,
        version: str,
        download_url: str,
        previous_version: Optional[str] = None,
    ):
        """
        Initialize a download task.

        Args:
            artifact: The artifact to download
            version: Version being downloaded
            download_url: URL of the asset
            previous_version: Version installed before this download, if any
        """
        self.artifact = artifact
        self.version = version
        self.download_url = download_url
        self.previous_version = previous_version
        self.status = DownloadStatus.PENDING

    @property
    def artifact_id(self) -> str:
        return self.artifact.artifact_id

    def __repr__(self) -> str:
        return (
            f"DownloadTask(id={self.artifact_id}, version={self.version}, "
            f"status={self.status}, url={self.download_url})"
        )


class DownloadProgress:
    """Bytes received so far for one artifact."""

    __slots__ = ("artifact_id", "downloaded", "total")

    def __init__(self, artifact_id: str, downloaded: int, total: int):
        self.artifact_id = artifact_id
        self.downloaded = downloaded
        self.total = total

    @property
    def fraction(self) -> float:
        return self.downloaded / self.total if self.total else 0.0

    @property
    def percentage(self) -> int:
        return int(self.fraction * 100)


class DownloadResult:
    """
    Outcome of one download task.
    """

    def __init__(
        self,
        artifact_id: str,
        version: str,
        success: bool,
        error_message: Optional[str] = None,
    ):
        self.artifact_id = artifact_id
        self.version = version
        self.success = success
        self.error_message = error_message

    def __repr__(self) -> str:
        if self.success:
            return f"DownloadResult(id={self.artifact_id}, version={self.version}, success)"
        return (
            f"DownloadResult(id={self.artifact_id}, version={self.version}, "
            f"failed: {self.error_message})"
        )


class DownloadResults:
    """
    Outcomes of a pipeline run, partitioned into successes and failures.
    """

    def __init__(self, results: Optional[List[DownloadResult]] = None):
        self.results: List[DownloadResult] = list(results or [])

    @property
    def successful(self) -> List[DownloadResult]:
        return [result for result in self.results if result.success]

    @property
    def failed(self) -> List[DownloadResult]:
        return [result for result in self.results if not result.success]

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def has_failures(self) -> bool:
        return self.failed_count > 0

    def summary(self) -> dict:
        """
        Get a summary of the run.

        Returns:
            Dictionary with counts of successful, failed and total downloads
        """
        return {
            "completed": self.success_count,
            "failed": self.failed_count,
            "total": len(self.results),
        }

    def __len__(self) -> int:
        return len(self.results)
