"""
Installation of downloaded artifacts.
"""

import logging
import pathlib
from typing import List, Optional

from artifact_updater.artifact_models.managed_artifact import ManagedArtifact
from artifact_updater.download_pipeline.install_ledger import InstallLedger, InstallRecord
from artifact_updater.update_check.local_scanner import LocalArtifactScanner
from artifact_updater.updater_logger import UpdaterLogger


class ArtifactInstaller:
    """
    Retires superseded copies of an artifact and records the install.

    By the time ``install`` runs, the new file has been validated and renamed to
    its final name, so removing the older copies never leaves the artifact
    missing.
    """

    def __init__(self, scanner: LocalArtifactScanner, ledger: InstallLedger, logger: UpdaterLogger):
        """
        Initialize the installer.

        Args:
            scanner: Finds the installed copies of an artifact
            ledger: Ledger installs are recorded in
            logger: Logger for install progress
        """
        self.scanner = scanner
        self.ledger = ledger
        self.logger = logger

    def install(
        self,
        artifact: ManagedArtifact,
        new_file: pathlib.Path,
        new_version: str,
        old_version: Optional[str],
    ) -> InstallRecord:
        """
        Install a validated artifact.

        Args:
            artifact: The managed artifact
            new_file: The new file, already at its final name
            new_version: Version of the new file
            old_version: Version that was installed before, if any

        Returns:
            The ledger record of the install
        """
        removed = self.remove_stale_copies(artifact, new_file)
        if removed:
            self.logger.log(
                f"Removed old versions of {artifact.artifact_id}: {[p.name for p in removed]}",
                logging.INFO,
            )

        record = self.ledger.record(artifact.artifact_id, old_version, new_version)
        self.logger.log(
            f"Successfully installed {artifact.artifact_id} version {new_version}",
            logging.INFO,
        )
        return record

    def remove_stale_copies(self, artifact: ManagedArtifact, keep: pathlib.Path) -> List[pathlib.Path]:
        """Delete every installed copy of ``artifact`` except ``keep``."""
        keep = pathlib.Path(keep).resolve()
        removed = []
        for path in self.scanner.all_installed_files(artifact):
            if path.resolve() == keep:
                continue
            try:
                path.unlink()
                removed.append(path)
            except OSError as e:
                self.logger.log(f"Failed to delete old file {path.name}: {e!r}", logging.WARNING)
        return removed
