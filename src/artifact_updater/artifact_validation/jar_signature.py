"""
Signature checks for signed archives.

An archive is signed when it carries META-INF/*.SF signature files. Each one
must have a matching signature block (.RSA, .EC or .DSA) holding a detached
PKCS#7 signature over it, and must digest either the whole manifest or the
manifest sections it covers. Every content entry then has to be listed in the
manifest with a matching digest and be covered by a trusted signer.
"""

import logging
import posixpath
import zipfile
from typing import Iterable, List, Optional, Set

from cryptography import x509
from cryptography.exceptions import InvalidSignature

from artifact_updater.artifact_validation.jar_manifest import (
    MANIFEST_NAME,
    JarManifest,
    ManifestSection,
    digests_match,
)
from artifact_updater.artifact_validation.pkcs7_signature import verify_detached_signature
from artifact_updater.updater_logger import UpdaterLogger

SIGNATURE_BLOCK_SUFFIXES = (".RSA", ".EC", ".DSA")


class SignatureCheckFailed(Exception):
    """Raised with a human-readable reason when an archive's signatures do not hold."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def is_signature_metadata(name: str) -> bool:
    """
    True for entries that are part of the signing machinery rather than content.

    These are the manifest itself and the signature files and blocks directly
    under META-INF/.
    """
    upper = name.upper()
    if upper == MANIFEST_NAME:
        return True
    directory, base = posixpath.split(upper)
    if directory != "META-INF":
        return False
    return (
        base.endswith(".SF")
        or base.endswith(SIGNATURE_BLOCK_SUFFIXES)
        or base.startswith("SIG-")
    )


def signer_matches(certificate: x509.Certificate, identity: str) -> bool:
    """
    Check a certificate subject against a trusted identity.

    Args:
        certificate: Signer certificate
        identity: Comma-separated RDNs such as "CN=updater" or "CN=updater,O=acme";
            every one of them must appear in the subject

    Returns:
        True if the subject carries all of the identity's attributes
    """
    subject = {_normalize_rdn(attribute.rfc4514_string()) for attribute in certificate.subject}
    wanted = [_normalize_rdn(part) for part in identity.split(",") if part.strip()]
    return bool(wanted) and all(part in subject for part in wanted)


def _normalize_rdn(rdn: str) -> str:
    key, _, value = rdn.partition("=")
    return f"{key.strip().upper()}={value.strip()}"


class JarSignatureVerifier:
    """
    Verifies the signatures of an opened archive.
    """

    def __init__(self, trusted_signers: Iterable[str], logger: UpdaterLogger):
        """
        Initialize the verifier.

        Args:
            trusted_signers: Identities (see signer_matches) whose signatures are accepted
            logger: Logger for signer details
        """
        self.trusted_signers = list(trusted_signers)
        self.logger = logger

    def is_signed(self, archive: zipfile.ZipFile) -> bool:
        return any(self._signature_files(archive))

    def verify(self, archive: zipfile.ZipFile, manifest: JarManifest) -> List[str]:
        """
        Verify every signature of a signed archive.

        Args:
            archive: The open archive
            manifest: Its parsed manifest

        Returns:
            Subjects of the trusted signers

        Raises:
            SignatureCheckFailed: If any signature, digest or signer check fails
            ParseError: If a signature file or block is malformed
        """
        names = archive.namelist()
        trusted_coverage: Set[str] = set()
        any_coverage: Set[str] = set()
        trusted_subjects: List[str] = []

        for sf_name in self._signature_files(archive):
            sf_bytes = archive.read(sf_name)
            certificate = self._verify_block(archive, names, sf_name, sf_bytes)
            covered = self._covered_entries(sf_name, JarManifest.parse(sf_bytes), manifest)
            any_coverage.update(covered)

            subject = certificate.subject.rfc4514_string()
            if any(signer_matches(certificate, identity) for identity in self.trusted_signers):
                trusted_coverage.update(covered)
                trusted_subjects.append(subject)
                self.logger.log(f"Valid signature found: {subject}", logging.DEBUG)
            else:
                self.logger.log(f"Signature from untrusted signer: {subject}", logging.WARNING)

        for info in archive.infolist():
            name = info.filename
            if info.is_dir() or is_signature_metadata(name):
                continue

            if name not in any_coverage:
                raise SignatureCheckFailed(f"Archive has unsigned entries (possible tampering): {name}")
            if name not in trusted_coverage:
                raise SignatureCheckFailed(f"Archive signature is not from a trusted signer: {name}")

            expected = manifest.entries[name].digests()
            if not digests_match(expected, archive.read(name)):
                raise SignatureCheckFailed(f"Entry digest does not match the manifest (tampered): {name}")

        return trusted_subjects

    @staticmethod
    def _signature_files(archive: zipfile.ZipFile) -> List[str]:
        return [
            name
            for name in archive.namelist()
            if posixpath.dirname(name).upper() == "META-INF" and name.upper().endswith(".SF")
        ]

    @staticmethod
    def _verify_block(
        archive: zipfile.ZipFile, names: List[str], sf_name: str, sf_bytes: bytes
    ) -> x509.Certificate:
        stem = sf_name[: -len(".SF")].upper()
        blocks = [
            name
            for name in names
            if name.upper().startswith(stem + ".") and name.upper().endswith(SIGNATURE_BLOCK_SUFFIXES)
        ]
        if not blocks:
            raise SignatureCheckFailed(f"Signature file has no signature block: {sf_name}")

        try:
            return verify_detached_signature(archive.read(blocks[0]), sf_bytes)
        except InvalidSignature as e:
            raise SignatureCheckFailed(f"Invalid signature in {blocks[0]}") from e

    @staticmethod
    def _covered_entries(sf_name: str, signature_file: JarManifest, manifest: JarManifest) -> Set[str]:
        """
        Work out which manifest entries a signature file vouches for.

        A matching whole-manifest digest covers every entry; otherwise each
        section digest must match the raw manifest section it names.
        """
        manifest_digests = signature_file.main.digests("-Digest-Manifest")
        if digests_match(manifest_digests, manifest.raw):
            return {name for name, section in manifest.entries.items() if section.digests()}

        covered = set()
        for name, section in signature_file.entries.items():
            manifest_section: Optional[ManifestSection] = manifest.entries.get(name)
            if manifest_section is None:
                raise SignatureCheckFailed(f"{sf_name} signs {name}, which the manifest does not list")
            if not digests_match(section.digests(), manifest_section.raw):
                raise SignatureCheckFailed(f"{sf_name} digest does not match the manifest section of {name}")
            if manifest_section.digests():
                covered.add(name)
        return covered
