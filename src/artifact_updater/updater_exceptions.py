"""
This module contains the exceptions raised by artifact_updater.
"""

from typing import Optional


class UpdaterException(Exception):
    """
    Base exception for artifact_updater errors.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ParseError(UpdaterException):
    """
    Raised when a string cannot be parsed into a structured value.
    """


class InvalidVersionError(ParseError, ValueError):
    """
    Raised when a version string does not match the accepted version format.
    """

    def __init__(self, version_string: Optional[str]):
        super().__init__(f"Invalid version format: {version_string!r}")
        self.version_string = version_string


class ReleaseNotFound(UpdaterException):
    """
    Raised when the release API answers 404 for a source.
    """


class TransportError(UpdaterException):
    """
    Raised on timeouts, connection failures and non-2xx HTTP responses.
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ArtifactValidationError(UpdaterException):
    """
    Raised when a downloaded artifact fails structural or signature checks.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"{reason}: {path}")
        self.path = path
        self.reason = reason


class ConfigError(UpdaterException):
    """
    Raised when configuration is malformed or semantically invalid.
    """
