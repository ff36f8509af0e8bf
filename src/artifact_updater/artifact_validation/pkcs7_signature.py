"""
Verification of detached PKCS#7 (CMS SignedData) signature blocks.

cryptography loads the certificates embedded in a signature block but does not
verify SignedData, so the SignerInfo is located here with a minimal DER reader
and its signature is checked against the signer certificate's public key.
Only what signature blocks in signed archives use is supported: a single
signer identified by issuer and serial number, with or without signed
attributes, over SHA-1/SHA-2 digests.
"""

import hashlib
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, padding, rsa
from cryptography.hazmat.primitives.serialization import pkcs7

from artifact_updater.updater_exceptions import ParseError

TAG_INTEGER = 0x02
TAG_OCTET_STRING = 0x04
TAG_OID = 0x06
TAG_SEQUENCE = 0x30
TAG_SET = 0x31
TAG_CONTEXT_0 = 0xA0

# DER contents of the digest algorithm OIDs
_DIGEST_OIDS = {
    bytes.fromhex("2b0e03021a"): ("sha1", hashes.SHA1),
    bytes.fromhex("608648016503040201"): ("sha256", hashes.SHA256),
    bytes.fromhex("608648016503040202"): ("sha384", hashes.SHA384),
    bytes.fromhex("608648016503040203"): ("sha512", hashes.SHA512),
}

# 1.2.840.113549.1.9.4
_MESSAGE_DIGEST_OID = bytes.fromhex("2a864886f70d010904")


class Tlv:
    """A DER element: its tag and where its header and contents sit in the buffer."""

    __slots__ = ("tag", "start", "content_start", "end")

    def __init__(self, tag: int, start: int, content_start: int, end: int):
        self.tag = tag
        self.start = start
        self.content_start = content_start
        self.end = end


def read_tlv(data: bytes, offset: int) -> Tlv:
    """
    Read the DER element starting at ``offset``.

    Raises:
        ParseError: On truncated input, high tag numbers or indefinite lengths
    """
    if offset + 2 > len(data):
        raise ParseError("Truncated DER element")

    tag = data[offset]
    if tag & 0x1F == 0x1F:
        raise ParseError("High tag numbers are not supported")

    length = data[offset + 1]
    pos = offset + 2
    if length & 0x80:
        count = length & 0x7F
        if count == 0 or count > 4:
            raise ParseError("Unsupported DER length encoding")
        if pos + count > len(data):
            raise ParseError("Truncated DER length")
        length = int.from_bytes(data[pos : pos + count], "big")
        pos += count

    if pos + length > len(data):
        raise ParseError("DER element overruns its container")
    return Tlv(tag, offset, pos, pos + length)


def children(data: bytes, parent: Tlv) -> List[Tlv]:
    """Return the elements directly inside a constructed element."""
    items = []
    pos = parent.content_start
    while pos < parent.end:
        item = read_tlv(data, pos)
        items.append(item)
        pos = item.end
    return items


def _expect(item: Tlv, tag: int, what: str) -> Tlv:
    if item.tag != tag:
        raise ParseError(f"Expected {what} (tag 0x{tag:02x}), found tag 0x{item.tag:02x}")
    return item


def verify_detached_signature(block: bytes, content: bytes) -> x509.Certificate:
    """
    Verify a detached PKCS#7 signature over ``content``.

    Args:
        block: DER-encoded signature block (e.g. META-INF/CERT.RSA)
        content: The signed bytes (the matching .SF file)

    Returns:
        The certificate of the signer

    Raises:
        ParseError: If the block is not a SignedData structure this reader understands
        InvalidSignature: If the signature or the signed message digest does not match
    """
    try:
        certificates = pkcs7.load_der_pkcs7_certificates(block)
    except ValueError as e:
        raise ParseError(f"Unreadable signature block: {e}") from e

    signer_info = _signer_info(block)
    parts = children(block, signer_info)
    if len(parts) < 5:
        raise ParseError("SignerInfo is incomplete")

    serial = _issuer_serial(block, parts[1])
    digest_name, hash_type = _digest_algorithm(block, parts[2])

    index = 3
    signed_attributes: Optional[Tlv] = None
    if parts[index].tag == TAG_CONTEXT_0:
        signed_attributes = parts[index]
        index += 1
    # parts[index] is the signature algorithm, which the key type already implies
    signature = _expect(parts[index + 1], TAG_OCTET_STRING, "signature")
    signature_bytes = block[signature.content_start : signature.end]

    if signed_attributes is not None:
        expected_digest = _message_digest(block, signed_attributes)
        if expected_digest != hashlib.new(digest_name, content).digest():
            raise InvalidSignature("Signed message digest does not match the signature file")
        # Signed attributes are signed as a DER SET, not with their [0] tag
        signed_bytes = bytes([TAG_SET]) + block[signed_attributes.start + 1 : signed_attributes.end]
    else:
        signed_bytes = content

    signer = _find_signer(certificates, serial)
    _verify_with_key(signer, signature_bytes, signed_bytes, hash_type())
    return signer


def _signer_info(block: bytes) -> Tlv:
    content_info = _expect(read_tlv(block, 0), TAG_SEQUENCE, "ContentInfo")
    outer = children(block, content_info)
    if len(outer) < 2:
        raise ParseError("ContentInfo has no content")
    explicit = _expect(outer[1], TAG_CONTEXT_0, "SignedData wrapper")
    signed_data = _expect(read_tlv(block, explicit.content_start), TAG_SEQUENCE, "SignedData")

    signer_infos = [item for item in children(block, signed_data) if item.tag == TAG_SET]
    # digestAlgorithms is also a SET; signerInfos is the last one
    if len(signer_infos) < 2:
        raise ParseError("SignedData has no signerInfos")
    infos = children(block, signer_infos[-1])
    if len(infos) != 1:
        raise ParseError(f"Expected exactly one signer, found {len(infos)}")
    return _expect(infos[0], TAG_SEQUENCE, "SignerInfo")


def _issuer_serial(block: bytes, item: Tlv) -> int:
    _expect(item, TAG_SEQUENCE, "issuerAndSerialNumber")
    parts = children(block, item)
    if len(parts) != 2:
        raise ParseError("Malformed issuerAndSerialNumber")
    serial = _expect(parts[1], TAG_INTEGER, "serial number")
    return int.from_bytes(block[serial.content_start : serial.end], "big", signed=True)


def _digest_algorithm(block: bytes, item: Tlv) -> Tuple[str, type]:
    _expect(item, TAG_SEQUENCE, "digestAlgorithm")
    oid = _expect(children(block, item)[0], TAG_OID, "digest algorithm OID")
    algorithm = _DIGEST_OIDS.get(block[oid.content_start : oid.end])
    if algorithm is None:
        raise ParseError("Unsupported signature digest algorithm")
    return algorithm


def _message_digest(block: bytes, attributes: Tlv) -> bytes:
    for attribute in children(block, attributes):
        parts = children(block, _expect(attribute, TAG_SEQUENCE, "attribute"))
        if len(parts) != 2:
            continue
        oid = parts[0]
        if oid.tag == TAG_OID and block[oid.content_start : oid.end] == _MESSAGE_DIGEST_OID:
            values = children(block, _expect(parts[1], TAG_SET, "attribute values"))
            value = _expect(values[0], TAG_OCTET_STRING, "message digest")
            return block[value.content_start : value.end]
    raise ParseError("Signed attributes carry no message digest")


def _find_signer(certificates: List[x509.Certificate], serial: int) -> x509.Certificate:
    for certificate in certificates:
        if certificate.serial_number == serial:
            return certificate
    raise ParseError("Signature block does not contain the signer certificate")


def _verify_with_key(
    certificate: x509.Certificate, signature: bytes, data: bytes, hash_algorithm: hashes.HashAlgorithm
) -> None:
    public_key = certificate.public_key()
    try:
        if isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(signature, data, padding.PKCS1v15(), hash_algorithm)
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, data, ec.ECDSA(hash_algorithm))
        elif isinstance(public_key, dsa.DSAPublicKey):
            public_key.verify(signature, data, hash_algorithm)
        else:
            raise ParseError(f"Unsupported signer key type: {type(public_key).__name__}")
    except UnsupportedAlgorithm as e:
        raise ParseError(f"Unsupported signature algorithm: {e}") from e
