"""
Validation of downloaded artifacts before they are trusted.

Checks run in order and stop at the first failure:

1. The file exists, is a regular file and is not empty
2. Its size is plausible (1 KiB to 100 MiB)
3. It is a readable ZIP container with a parseable META-INF/MANIFEST.MF
4. It contains the marker entry identifying a recognized package
5. If signed, every content entry is signed by a trusted signer
6. If unsigned, it is accepted with a warning unless signatures are required
"""

import logging
import os
import pathlib
import zipfile
from typing import Iterable, Union

from artifact_updater.artifact_validation.jar_manifest import MANIFEST_NAME, JarManifest
from artifact_updater.artifact_validation.jar_signature import (
    JarSignatureVerifier,
    SignatureCheckFailed,
)
from artifact_updater.updater_exceptions import ArtifactValidationError, ParseError
from artifact_updater.updater_logger import UpdaterLogger

MIN_ARTIFACT_SIZE = 1024
MAX_ARTIFACT_SIZE = 100 * 1024 * 1024
DEFAULT_MARKER_ENTRY = "META-INF/mods.toml"


class ArtifactValidator:
    """
    Structural and signature checks on a downloaded artifact.
    """

    def __init__(
        self,
        logger: UpdaterLogger,
        trusted_signers: Iterable[str] = (),
        required_marker_entry: str = DEFAULT_MARKER_ENTRY,
        require_signature: bool = False,
        min_size: int = MIN_ARTIFACT_SIZE,
        max_size: int = MAX_ARTIFACT_SIZE,
    ):
        """
        Initialize the validator.

        Args:
            logger: Logger for validation results
            trusted_signers: Signer identities such as "CN=updater" that are accepted
            required_marker_entry: Entry every valid artifact must contain
            require_signature: Reject unsigned artifacts instead of warning about them
            min_size: Smallest plausible artifact size in bytes
            max_size: Largest plausible artifact size in bytes
        """
        self.logger = logger
        self.required_marker_entry = required_marker_entry
        self.require_signature = require_signature
        self.min_size = min_size
        self.max_size = max_size
        self.signature_verifier = JarSignatureVerifier(trusted_signers, logger)

    def validate(self, path: Union[str, os.PathLike]) -> None:
        """
        Validate an artifact file.

        Args:
            path: File to check

        Raises:
            ArtifactValidationError: With the reason of the first failed check
        """
        path = pathlib.Path(path)
        name = path.name

        if not path.exists():
            raise ArtifactValidationError(name, "File does not exist")
        if not path.is_file():
            raise ArtifactValidationError(name, "Not a regular file")

        size = path.stat().st_size
        if size == 0:
            raise ArtifactValidationError(name, "File is empty")
        if size < self.min_size:
            raise ArtifactValidationError(name, f"File suspiciously small ({size} bytes)")
        if size > self.max_size:
            raise ArtifactValidationError(name, f"File suspiciously large ({size} bytes)")

        try:
            with zipfile.ZipFile(path) as archive:
                self._check_archive(archive, name)
        except zipfile.BadZipFile as e:
            raise ArtifactValidationError(name, f"Not a valid archive ({e})") from e
        except ParseError as e:
            raise ArtifactValidationError(name, f"Malformed archive metadata ({e.message})") from e
        except (OSError, EOFError, ValueError, RuntimeError, NotImplementedError) as e:
            # zipfile raises these for truncated, encrypted or oddly compressed members
            raise ArtifactValidationError(name, f"Unreadable archive ({e})") from e

        self.logger.log(f"Artifact validation passed: {name}", logging.DEBUG)

    def is_valid(self, path: Union[str, os.PathLike]) -> bool:
        """Validate ``path``, logging and returning False instead of raising."""
        try:
            self.validate(path)
            return True
        except ArtifactValidationError as e:
            self.logger.log(f"Artifact is invalid: {e.message}", logging.ERROR)
            return False

    def _check_archive(self, archive: zipfile.ZipFile, name: str) -> None:
        bad_entry = archive.testzip()
        if bad_entry is not None:
            raise ArtifactValidationError(name, f"Corrupt archive entry {bad_entry}")

        names = set(archive.namelist())
        if MANIFEST_NAME not in names:
            raise ArtifactValidationError(name, "Archive has no manifest")
        manifest = JarManifest.parse(archive.read(MANIFEST_NAME))

        if self.required_marker_entry and self.required_marker_entry not in names:
            raise ArtifactValidationError(
                name, f"Not a recognized package (missing {self.required_marker_entry})"
            )

        if not self.signature_verifier.is_signed(archive):
            if self.require_signature:
                raise ArtifactValidationError(name, "Archive is not signed")
            self.logger.log(
                f"Archive is not signed: {name} (signatures will be required in future versions)",
                logging.WARNING,
            )
            return

        try:
            signers = self.signature_verifier.verify(archive, manifest)
        except SignatureCheckFailed as e:
            raise ArtifactValidationError(name, e.reason) from e

        self.logger.log(f"Archive signature verified: {name} ({'; '.join(signers)})", logging.INFO)
