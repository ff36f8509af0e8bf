"""
Persisted record of installed updates.

The ledger lives in a JSON file next to the installed artifacts:

    {
      "lastUpdate": "2026-01-01T12:00:00+00:00",
      "updatedArtifacts": [
        {"artifactId": "demo", "oldVersion": "1.0.0", "newVersion": "1.1.0",
         "updatedAt": "2026-01-01T12:00:00+00:00"}
      ],
      "restartRequired": true
    }

Every mutation reads the file, applies the change and writes it back, so
installs recorded by an earlier run survive a crash in a later one.
"""

import json
import logging
import os
import pathlib
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from artifact_updater.updater_logger import UpdaterLogger

STATE_FILE_NAME = ".artifact-updater-state.json"


class InstallRecord(BaseModel):
    """One installed update."""

    model_config = ConfigDict(populate_by_name=True)

    artifact_id: str = Field(..., alias="artifactId")
    old_version: Optional[str] = Field(None, alias="oldVersion")
    new_version: str = Field(..., alias="newVersion")
    updated_at: str = Field(..., alias="updatedAt")


class LedgerState(BaseModel):
    """Contents of the ledger file."""

    model_config = ConfigDict(populate_by_name=True)

    last_update: Optional[str] = Field(None, alias="lastUpdate")
    updated_artifacts: List[InstallRecord] = Field(default_factory=list, alias="updatedArtifacts")
    restart_required: bool = Field(False, alias="restartRequired")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InstallLedger:
    """
    Append-only install history with a restart-required flag.
    """

    def __init__(
        self,
        state_path: pathlib.Path,
        logger: UpdaterLogger,
        clock: Callable[[], str] = _utc_now,
    ):
        """
        Initialize the ledger.

        Args:
            state_path: JSON file the ledger is persisted to
            logger: Logger for persistence problems
            clock: Returns the timestamp string stamped on records
        """
        self.state_path = pathlib.Path(state_path)
        self.logger = logger
        self._clock = clock
        self._lock = threading.Lock()

    def record(self, artifact_id: str, old_version: Optional[str], new_version: str) -> InstallRecord:
        """
        Append an install and mark a restart as required.

        Args:
            artifact_id: Id of the installed artifact
            old_version: Version that was replaced, or None for a fresh install
            new_version: Version that was installed

        Returns:
            The appended record
        """
        now = self._clock()
        install = InstallRecord(
            artifact_id=artifact_id,
            old_version=old_version,
            new_version=new_version,
            updated_at=now,
        )
        with self._lock:
            state = self._load()
            state.updated_artifacts.append(install)
            state.last_update = now
            state.restart_required = True
            self._save(state)
        return install

    def is_restart_required(self) -> bool:
        with self._lock:
            return self._load().restart_required

    def clear_restart_required(self) -> None:
        """Acknowledge the pending restart."""
        with self._lock:
            if not self.state_path.exists():
                return
            state = self._load()
            state.restart_required = False
            self._save(state)

    def records(self) -> List[InstallRecord]:
        with self._lock:
            return list(self._load().updated_artifacts)

    def last_update(self) -> Optional[str]:
        with self._lock:
            return self._load().last_update

    def _load(self) -> LedgerState:
        if not self.state_path.exists():
            return LedgerState()

        try:
            with open(self.state_path, encoding="utf-8") as f:
                return LedgerState.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            self.logger.log(
                f"Failed to read ledger {self.state_path}, starting a new one: {e!r}",
                logging.WARNING,
            )
            return LedgerState()

    def _save(self, state: LedgerState) -> None:
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.state_path.with_name(self.state_path.name + ".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(state.model_dump(by_alias=True), f, indent=2)
        os.replace(temp_path, self.state_path)
