"""
Logger used across artifact_updater.

Every component receives an UpdaterLogger in its constructor and reports
through ``log(message, level)``. Each call is rendered as one JSON line that
records where it came from, so interleaved output from concurrent artifact
checks stays attributable.
"""

import inspect
import json
import logging
from datetime import datetime

from pydantic import BaseModel


class LogLine(BaseModel):
    """
    Represents a line in the updater log
    """

    time: str
    level: str
    caller_file: str
    caller_name: str
    caller_line: int
    message: str


class UpdaterLogger:
    """
    Logger class
    """

    def __init__(self, name: str = "artifact_updater", verbose: bool = False) -> None:
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    def set_verbose(self, verbose: bool) -> None:
        self.logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    def log(self, debug_message: str, level: int) -> None:
        """
        Log the message at the given level, tagged with the caller's location
        """
        if not self.logger.isEnabledFor(level):
            return

        debug_message = debug_message.replace("\n", " ")

        # Collect details about the caller
        caller = inspect.stack(context=0)[1]

        debug_log_line = LogLine(
            time=str(datetime.now()),
            level=logging.getLevelName(level),
            caller_file=caller.filename.replace("\\", "/").split("/")[-1],
            caller_name=caller.function,
            caller_line=caller.lineno,
            message=debug_message,
        )

        self.logger.log(level=level, msg=json.dumps(debug_log_line.model_dump()))
