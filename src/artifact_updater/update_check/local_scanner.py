"""
Detection of locally installed artifact versions.

The version of an installed artifact is taken from its filename by reverse
matching the artifact's filename template; when that yields nothing, the
archive's own metadata (manifest Implementation-Version, then the marker
descriptor's version) is consulted instead.
"""

import logging
import pathlib
import re
import zipfile
from typing import Iterable, List, Optional, Pattern, Tuple

try:
    import tomllib
except ModuleNotFoundError:
    # Python < 3.11
    import tomli as tomllib

from artifact_updater.artifact_models.managed_artifact import VERSION_PLACEHOLDER, ManagedArtifact
from artifact_updater.artifact_validation.jar_manifest import MANIFEST_NAME, JarManifest
from artifact_updater.artifact_validation.validator import DEFAULT_MARKER_ENTRY
from artifact_updater.updater_exceptions import ParseError
from artifact_updater.updater_logger import UpdaterLogger

Candidate = Tuple[pathlib.Path, float]

# A version starts with a digit (optionally after "v") and runs through dotted
# numbers plus an optional pre-release or build suffix
VERSION_CAPTURE = r"(v?\d+(?:\.\d+)*(?:[-+][0-9A-Za-z.+-]*)?)?"


def template_pattern(filename_template: str) -> Pattern[str]:
    """
    Build a regex that matches filenames produced by a template.

    The capture only accepts version-shaped text, so "demo-{version}.zip"
    matches "demo-1.2.0.zip" but not "demo-extra-2.0.0.zip". An empty capture
    still matches; callers treat it as an undeterminable version.
    """
    prefix, _, suffix = filename_template.partition(VERSION_PLACEHOLDER)
    return re.compile(f"{re.escape(prefix)}{VERSION_CAPTURE}{re.escape(suffix)}")


def version_from_filename(filename: str, filename_template: str) -> Optional[str]:
    """
    Extract the version from a filename.

    Example: template "demo-{version}.zip", filename "demo-2.0.0.zip" -> "2.0.0"

    Returns:
        The captured version, or None if the name does not match or the capture is empty
    """
    match = template_pattern(filename_template).fullmatch(filename)
    if match is None or not match.group(1):
        return None
    return match.group(1)


def version_from_metadata(path: pathlib.Path, marker_entry: str = DEFAULT_MARKER_ENTRY) -> Optional[str]:
    """
    Read the version embedded in an archive.

    Looks at the manifest's Implementation-Version first, then at a top-level or
    first-package ``version`` in the TOML marker descriptor. Build-time
    placeholders such as "${file.jarVersion}" are ignored.
    """
    try:
        with zipfile.ZipFile(path) as archive:
            names = set(archive.namelist())

            if MANIFEST_NAME in names:
                manifest = JarManifest.parse(archive.read(MANIFEST_NAME))
                version = manifest.main.get("Implementation-Version")
                if version and "${" not in version:
                    return version

            if marker_entry in names and marker_entry.endswith(".toml"):
                descriptor = tomllib.loads(archive.read(marker_entry).decode("utf-8"))
                version = descriptor.get("version")
                if not version and descriptor.get("mods"):
                    version = descriptor["mods"][0].get("version")
                if isinstance(version, str) and version and "${" not in version:
                    return version
    except (zipfile.BadZipFile, OSError, ParseError, UnicodeDecodeError, tomllib.TOMLDecodeError):
        return None

    return None


def detect_local_version(
    candidates: Iterable[Candidate],
    filename_template: str,
    marker_entry: str = DEFAULT_MARKER_ENTRY,
) -> Optional[str]:
    """
    Determine the installed version from a directory listing.

    Args:
        candidates: (path, modification time) pairs of the files present
        filename_template: The artifact's filename template
        marker_entry: Marker descriptor consulted by the metadata fallback

    Returns:
        The version of the most recently modified matching file, or None
    """
    pattern = template_pattern(filename_template)
    matching = [(path, mtime) for path, mtime in candidates if pattern.fullmatch(path.name)]
    if not matching:
        return None

    newest, _ = max(matching, key=lambda candidate: candidate[1])
    version = version_from_filename(newest.name, filename_template)
    if version is not None:
        return version

    return version_from_metadata(newest, marker_entry)


class LocalArtifactScanner:
    """
    Scans an install directory for installed artifacts.
    """

    def __init__(
        self,
        install_dir: pathlib.Path,
        logger: UpdaterLogger,
        marker_entry: str = DEFAULT_MARKER_ENTRY,
    ):
        """
        Initialize the scanner.

        Args:
            install_dir: Directory artifacts are installed into
            logger: Logger for scan results
            marker_entry: Marker descriptor consulted by the metadata fallback
        """
        self.install_dir = pathlib.Path(install_dir)
        self.logger = logger
        self.marker_entry = marker_entry

    def list_candidates(self) -> List[Candidate]:
        """List the regular files in the install directory with their modification times."""
        if not self.install_dir.is_dir():
            self.logger.log(f"Install directory not found: {self.install_dir}", logging.WARNING)
            return []

        candidates = []
        for path in self.install_dir.iterdir():
            try:
                if path.is_file():
                    candidates.append((path, path.stat().st_mtime))
            except OSError:
                # Removed between listing and stat
                continue
        return candidates

    def all_installed_files(self, artifact: ManagedArtifact) -> List[pathlib.Path]:
        """Return every installed file that matches the artifact's filename template."""
        pattern = template_pattern(artifact.filename_template)
        return [path for path, _ in self.list_candidates() if pattern.fullmatch(path.name)]

    def find_installed_version(self, artifact: ManagedArtifact) -> Optional[str]:
        """
        Find the installed version of an artifact.

        Args:
            artifact: The managed artifact

        Returns:
            The installed version, or None if it is not installed or undeterminable
        """
        matching = self.all_installed_files(artifact)
        if len(matching) > 1:
            self.logger.log(
                f"Multiple versions found for {artifact.artifact_id}: {[p.name for p in matching]}",
                logging.WARNING,
            )

        version = detect_local_version(
            self.list_candidates(), artifact.filename_template, self.marker_entry
        )
        self.logger.log(
            f"Detected local version for {artifact.artifact_id}: {version or 'NOT FOUND'}",
            logging.INFO,
        )
        return version
