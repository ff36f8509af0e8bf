"""
Download and installation of artifact updates.

This package handles:
1. Staging one download per artifact that needs an update
2. Streaming downloads under a global concurrency cap
3. Validating, installing and recording the downloaded artifacts
"""

from .downloader import DEFAULT_DOWNLOAD_TIMEOUT_SECONDS, ArtifactDownloader
from .install_ledger import STATE_FILE_NAME, InstallLedger, InstallRecord
from .installer import ArtifactInstaller
from .models import DownloadProgress, DownloadResult, DownloadResults, DownloadStatus, DownloadTask
from .pipeline import DEFAULT_MAX_CONCURRENT_DOWNLOADS, DownloadPipeline

__all__ = [
    "ArtifactDownloader",
    "ArtifactInstaller",
    "DownloadPipeline",
    "DownloadProgress",
    "DownloadResult",
    "DownloadResults",
    "DownloadStatus",
    "DownloadTask",
    "InstallLedger",
    "InstallRecord",
    "STATE_FILE_NAME",
    "DEFAULT_DOWNLOAD_TIMEOUT_SECONDS",
    "DEFAULT_MAX_CONCURRENT_DOWNLOADS",
]
