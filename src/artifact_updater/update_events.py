"""
Events the updater reports to whatever notifies the operator.

The orchestrator emits one event per lifecycle step to an UpdateEventSink.
LoggingEventSink writes them to the updater log; RecordingEventSink keeps them
in memory for inspection.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, runtime_checkable

from artifact_updater.updater_logger import UpdaterLogger


@dataclass(frozen=True)
class UpdateSummary:
    """One artifact that will move from one version to another."""

    artifact_id: str
    from_version: Optional[str]
    to_version: str


@dataclass(frozen=True)
class CheckingStarted:
    count: int


@dataclass(frozen=True)
class UpdatesFound:
    updates: List[UpdateSummary] = field(default_factory=list)


@dataclass(frozen=True)
class NoUpdates:
    pass


@dataclass(frozen=True)
class DownloadStarted:
    count: int


@dataclass(frozen=True)
class DownloadFinished:
    successes: int
    failures: int


@dataclass(frozen=True)
class UpdateError:
    message: str


@runtime_checkable
class UpdateEventSink(Protocol):
    """Receives updater events."""

    def emit(self, event: object) -> None:
        ...


class LoggingEventSink:
    """
    Writes every event to the updater log.
    """

    def __init__(self, logger: UpdaterLogger):
        self.logger = logger

    def emit(self, event: object) -> None:
        if isinstance(event, CheckingStarted):
            self.logger.log(f"Checking {event.count} artifacts for updates", logging.INFO)
        elif isinstance(event, UpdatesFound):
            described = ", ".join(
                f"{update.artifact_id} {update.from_version or 'none'} -> {update.to_version}"
                for update in event.updates
            )
            self.logger.log(f"Updates found: {described}", logging.INFO)
        elif isinstance(event, NoUpdates):
            self.logger.log("All managed artifacts are up to date", logging.INFO)
        elif isinstance(event, DownloadStarted):
            self.logger.log(f"Downloading {event.count} updates", logging.INFO)
        elif isinstance(event, DownloadFinished):
            level = logging.WARNING if event.failures else logging.INFO
            self.logger.log(
                f"Downloads finished: {event.successes} succeeded, {event.failures} failed", level
            )
        elif isinstance(event, UpdateError):
            self.logger.log(f"Update error: {event.message}", logging.ERROR)
        else:
            self.logger.log(f"Unknown update event: {event!r}", logging.DEBUG)


class RecordingEventSink:
    """
    Keeps every event it receives, in order.
    """

    def __init__(self):
        self.events: List[object] = []

    def emit(self, event: object) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [event for event in self.events if isinstance(event, event_type)]

    def clear(self) -> None:
        self.events.clear()
