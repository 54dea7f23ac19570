"""COSE Sign1 implementation with pluggable signers and verifiers.

This module provides generic COSE Sign1 signing and verification functions
that accept signer and verifier objects, allowing keys to be managed
externally. Signed CoRIMs and signed CoSERV results are built on top of it.
"""

import logging
from collections.abc import Mapping
from typing import Any, NamedTuple, Optional, Protocol, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, utils

from . import cbor_utils

logger = logging.getLogger(__name__)

# COSE header labels
HEADER_ALG = 1
HEADER_CONTENT_TYPE = 3
HEADER_KID = 4

# COSE algorithm identifiers
ALG_ES256 = -7
ALG_ES384 = -35
ALG_ES512 = -36
ALG_EDDSA = -8

_ECDSA_CURVES = {
    "secp256r1": (ALG_ES256, hashes.SHA256, 32),
    "secp384r1": (ALG_ES384, hashes.SHA384, 48),
    "secp521r1": (ALG_ES512, hashes.SHA512, 66),
}


class Signer(Protocol):
    """Protocol for COSE Sign1 signers."""

    def sign(self, message: bytes) -> bytes:
        """Sign a message and return the signature.

        Args:
            message: The message to sign

        Returns:
            The signature bytes
        """

    @property
    def algorithm(self) -> int:
        """Get the COSE algorithm identifier.

        Returns:
            COSE algorithm identifier (e.g., -7 for ES256)
        """


class Verifier(Protocol):
    """Protocol for COSE Sign1 verifiers."""

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verify a signature on a message.

        Args:
            message: The message that was signed
            signature: The signature to verify

        Returns:
            True if signature is valid, False otherwise
        """


class Sign1Message(NamedTuple):
    """The four members of a decoded COSE_Sign1, plus the parsed protected header."""

    protected_bytes: bytes
    protected: dict
    unprotected: dict
    payload: Optional[bytes]
    signature: bytes


def _sig_structure(protected_bytes: bytes, external_aad: bytes, payload: bytes) -> bytes:
    return cbor_utils.encode(["Signature1", protected_bytes, external_aad, payload])


def cose_sign1_sign(
    payload: bytes,
    signer: Signer,
    protected_header: Optional[dict[int, Any]] = None,
    unprotected_header: Optional[dict[int, Any]] = None,
    external_aad: bytes = b"",
) -> bytes:
    """Create a COSE Sign1 message.

    Args:
        payload: The payload to sign
        signer: A signer object that implements the sign method
        protected_header: Protected header parameters (will be integrity protected)
        unprotected_header: Unprotected header parameters
        external_aad: External additional authenticated data

    Returns:
        CBOR-encoded COSE Sign1 message with tag 18
    """
    protected_header = dict(protected_header or {})
    if HEADER_ALG not in protected_header:
        protected_header[HEADER_ALG] = signer.algorithm

    protected_header_bytes = cbor_utils.encode(protected_header) if protected_header else b""

    if unprotected_header is None:
        unprotected_header = {}

    signature = signer.sign(_sig_structure(protected_header_bytes, external_aad, payload))
    logger.debug("signed COSE_Sign1 payload of %d bytes with alg %s", len(payload), signer.algorithm)

    cose_sign1 = [protected_header_bytes, unprotected_header, payload, signature]
    return cbor_utils.encode(cbor_utils.create_tag(cbor_utils.TAG_COSE_SIGN1, cose_sign1))


def decode_sign1(cose_sign1_message: bytes) -> Sign1Message:
    """Decode a (tagged or untagged) COSE Sign1 message without verifying it.

    Args:
        cose_sign1_message: CBOR-encoded COSE Sign1 message

    Returns:
        The decoded message members

    Raises:
        ValueError: If the message is not a well-formed COSE_Sign1
    """
    decoded = cbor_utils.decode(cose_sign1_message)

    if cbor_utils.is_tag(decoded):
        if cbor_utils.get_tag_number(decoded) != cbor_utils.TAG_COSE_SIGN1:
            raise ValueError(
                f"expecting COSE_Sign1 tag {cbor_utils.TAG_COSE_SIGN1}, "
                f"got tag {cbor_utils.get_tag_number(decoded)}"
            )
        decoded = cbor_utils.get_tag_value(decoded)

    if not isinstance(decoded, (list, tuple)) or len(decoded) != 4:
        raise ValueError("COSE_Sign1 must be an array of 4 elements")

    protected_bytes, unprotected, payload, signature = decoded
    if not isinstance(protected_bytes, bytes):
        raise ValueError("COSE_Sign1 protected header must be a byte string")
    if not isinstance(unprotected, Mapping):
        raise ValueError("COSE_Sign1 unprotected header must be a map")
    if payload is not None and not isinstance(payload, bytes):
        raise ValueError("COSE_Sign1 payload must be a byte string or nil")
    if not isinstance(signature, bytes):
        raise ValueError("COSE_Sign1 signature must be a byte string")

    protected = cbor_utils.decode(protected_bytes) if protected_bytes else {}
    if not isinstance(protected, Mapping):
        raise ValueError("COSE_Sign1 protected header must encode a map")

    return Sign1Message(protected_bytes, dict(protected), dict(unprotected), payload, signature)


def cose_sign1_verify(
    cose_sign1_message: bytes,
    verifier: Verifier,
    external_aad: bytes = b"",
) -> tuple[bool, Optional[bytes]]:
    """Verify a COSE Sign1 message.

    Args:
        cose_sign1_message: CBOR-encoded COSE Sign1 message
        verifier: A verifier object that implements the verify method
        external_aad: External additional authenticated data used during signing

    Returns:
        Tuple of (verification_result, payload if verified successfully)
    """
    try:
        message = decode_sign1(cose_sign1_message)
    except (ValueError, TypeError) as err:
        logger.debug("rejecting malformed COSE_Sign1: %s", err)
        return False, None

    if message.payload is None:
        return False, None

    signing_input = _sig_structure(message.protected_bytes, external_aad, message.payload)
    if verifier.verify(signing_input, message.signature):
        return True, message.payload
    return False, None


class ECDSASigner:
    """ECDSA signer for the P-256, P-384 and P-521 curves (ES256/ES384/ES512)."""

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        """Initialize the signer.

        Args:
            private_key: A ``cryptography`` EC private key

        Raises:
            ValueError: If the key is on an unsupported curve
        """
        if private_key.curve.name not in _ECDSA_CURVES:
            raise ValueError(f"unsupported EC curve: {private_key.curve.name}")
        self.private_key = private_key
        self._alg, self._hash, self._size = _ECDSA_CURVES[private_key.curve.name]

    def sign(self, message: bytes) -> bytes:
        """Sign a message, returning the raw ``r || s`` signature."""
        signature_der = self.private_key.sign(message, ec.ECDSA(self._hash()))
        r, s = utils.decode_dss_signature(signature_der)
        return r.to_bytes(self._size, byteorder="big") + s.to_bytes(self._size, byteorder="big")

    @property
    def algorithm(self) -> int:
        return self._alg


class ECDSAVerifier:
    """ECDSA verifier matching :class:`ECDSASigner`."""

    def __init__(self, public_key: ec.EllipticCurvePublicKey):
        if public_key.curve.name not in _ECDSA_CURVES:
            raise ValueError(f"unsupported EC curve: {public_key.curve.name}")
        self.public_key = public_key
        self._alg, self._hash, self._size = _ECDSA_CURVES[public_key.curve.name]

    @property
    def algorithm(self) -> int:
        return self._alg

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verify a raw ``r || s`` signature."""
        if len(signature) != 2 * self._size:
            return False

        r = int.from_bytes(signature[: self._size], byteorder="big")
        s = int.from_bytes(signature[self._size :], byteorder="big")
        try:
            self.public_key.verify(utils.encode_dss_signature(r, s), message, ec.ECDSA(self._hash()))
        except InvalidSignature:
            return False
        return True


class EdDSASigner:
    """Ed25519 signer (COSE EdDSA)."""

    def __init__(self, private_key: ed25519.Ed25519PrivateKey):
        self.private_key = private_key

    def sign(self, message: bytes) -> bytes:
        return self.private_key.sign(message)

    @property
    def algorithm(self) -> int:
        return ALG_EDDSA


class EdDSAVerifier:
    """Ed25519 verifier (COSE EdDSA)."""

    def __init__(self, public_key: ed25519.Ed25519PublicKey):
        self.public_key = public_key

    @property
    def algorithm(self) -> int:
        return ALG_EDDSA

    def verify(self, message: bytes, signature: bytes) -> bool:
        try:
            self.public_key.verify(signature, message)
        except InvalidSignature:
            return False
        return True


def signer_from_private_key(private_key: Any) -> Signer:
    """Wrap a ``cryptography`` private key into a COSE signer.

    Raises:
        ValueError: If the key type is not supported
    """
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return ECDSASigner(private_key)
    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        return EdDSASigner(private_key)
    raise ValueError(f"unsupported private key type: {type(private_key).__name__}")


def verifier_from_public_key(public_key: Any) -> Union[ECDSAVerifier, EdDSAVerifier]:
    """Wrap a ``cryptography`` public key (or certificate) into a COSE verifier.

    Raises:
        ValueError: If the key type is not supported
    """
    if isinstance(public_key, x509.Certificate):
        public_key = public_key.public_key()
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return ECDSAVerifier(public_key)
    if isinstance(public_key, ed25519.Ed25519PublicKey):
        return EdDSAVerifier(public_key)
    raise ValueError(f"unsupported public key type: {type(public_key).__name__}")


def load_signer_pem(data: bytes, password: Optional[bytes] = None) -> Signer:
    """Load a PEM-encoded private key and wrap it into a signer.

    Raises:
        ValueError: If the PEM cannot be parsed or the key is not supported
    """
    private_key = serialization.load_pem_private_key(data, password=password)
    return signer_from_private_key(private_key)


def load_public_key_pem(data: bytes) -> Any:
    """Load a PEM-encoded public key or X.509 certificate.

    Returns:
        A ``cryptography`` public key

    Raises:
        ValueError: If the PEM holds neither a public key nor a certificate
    """
    if b"-----BEGIN CERTIFICATE-----" in data:
        return x509.load_pem_x509_certificate(data).public_key()
    return serialization.load_pem_public_key(data)


def generate_es256_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Generate an ES256 (ECDSA P-256) key pair.

    Returns:
        Tuple of (private_key, public_key)
    """
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()
