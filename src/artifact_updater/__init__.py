"""
artifact_updater keeps managed artifacts in sync with their GitHub releases.
"""

from artifact_updater.orchestrator import UpdateCheckReport, UpdateOrchestrator
from artifact_updater.updater_config import UpdaterConfig
from artifact_updater.updater_logger import UpdaterLogger

__all__ = ["UpdateOrchestrator", "UpdateCheckReport", "UpdaterConfig", "UpdaterLogger"]
