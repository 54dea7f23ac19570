"""COSE_Key conversion and thumbprints (RFC 9052, RFC 9679)."""

from collections.abc import Mapping
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa

from . import cbor_utils
from .digests import SHA256, HashEntry

# COSE key labels
KTY = 1
KID = 2
ALG = 3
CRV = -1
X = -2
Y = -3
D = -4
RSA_N = -1
RSA_E = -2

KTY_OKP = 1
KTY_EC2 = 2
KTY_RSA = 3
KTY_SYMMETRIC = 4

CRV_P256 = 1
CRV_P384 = 2
CRV_P521 = 3
CRV_ED25519 = 6
CRV_ED448 = 7

_EC_CURVES = {
    CRV_P256: ec.SECP256R1,
    CRV_P384: ec.SECP384R1,
    CRV_P521: ec.SECP521R1,
}

# Required members for each key type according to RFC 9679
REQUIRED_MEMBERS = {
    KTY_OKP: [KTY, CRV, X],
    KTY_EC2: [KTY, CRV, X, Y],
    KTY_RSA: [KTY, RSA_N, RSA_E],
    KTY_SYMMETRIC: [KTY, -1],
}


def _int_from_bytes(value: Any, what: str) -> int:
    if not isinstance(value, bytes) or not value:
        raise ValueError(f"COSE_Key {what} must be a non-empty byte string")
    return int.from_bytes(value, "big")


def _int_to_bytes(value: int, length: int = 0) -> bytes:
    return value.to_bytes(max(length, (value.bit_length() + 7) // 8), "big")


def cose_key_to_public_key(cose_key: dict[int, Any]) -> Any:
    """Convert a COSE_Key map into a ``cryptography`` public key.

    Args:
        cose_key: COSE key as a dictionary with integer labels

    Returns:
        An EC, RSA, Ed25519 or Ed448 public key object

    Raises:
        ValueError: If the key type or curve is unsupported or members are missing
    """
    if not isinstance(cose_key, Mapping):
        raise ValueError(f"COSE_Key must be a map, got {type(cose_key).__name__}")

    kty = cose_key.get(KTY)
    if kty == KTY_EC2:
        curve = _EC_CURVES.get(cose_key.get(CRV))
        if curve is None:
            raise ValueError(f"unsupported EC2 curve: {cose_key.get(CRV)}")
        numbers = ec.EllipticCurvePublicNumbers(
            _int_from_bytes(cose_key.get(X), "x"),
            _int_from_bytes(cose_key.get(Y), "y"),
            curve(),
        )
        return numbers.public_key()

    if kty == KTY_OKP:
        crv = cose_key.get(CRV)
        x = cose_key.get(X)
        if not isinstance(x, bytes):
            raise ValueError("COSE_Key x must be a byte string")
        if crv == CRV_ED25519:
            return ed25519.Ed25519PublicKey.from_public_bytes(x)
        if crv == CRV_ED448:
            return ed448.Ed448PublicKey.from_public_bytes(x)
        raise ValueError(f"unsupported OKP curve: {crv}")

    if kty == KTY_RSA:
        numbers = rsa.RSAPublicNumbers(
            _int_from_bytes(cose_key.get(RSA_E), "e"),
            _int_from_bytes(cose_key.get(RSA_N), "n"),
        )
        return numbers.public_key()

    raise ValueError(f"unsupported COSE key type: {kty}")


def public_key_to_cose_key(key: Any) -> dict[int, Any]:
    """Convert a ``cryptography`` public key into a COSE_Key map.

    Raises:
        ValueError: If the key type or curve is unsupported
    """
    if isinstance(key, ec.EllipticCurvePublicKey):
        crv = next((c for c, cls in _EC_CURVES.items() if isinstance(key.curve, cls)), None)
        if crv is None:
            raise ValueError(f"unsupported curve: {key.curve.name}")
        size = (key.curve.key_size + 7) // 8
        numbers = key.public_numbers()
        return {
            KTY: KTY_EC2,
            CRV: crv,
            X: _int_to_bytes(numbers.x, size),
            Y: _int_to_bytes(numbers.y, size),
        }

    if isinstance(key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
        crv = CRV_ED25519 if isinstance(key, ed25519.Ed25519PublicKey) else CRV_ED448
        raw = key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
        return {KTY: KTY_OKP, CRV: crv, X: raw}

    if isinstance(key, rsa.RSAPublicKey):
        numbers = key.public_numbers()
        return {KTY: KTY_RSA, RSA_N: _int_to_bytes(numbers.n), RSA_E: _int_to_bytes(numbers.e)}

    raise ValueError(f"unsupported key type: {type(key).__name__}")


def canonical_cbor(cose_key: dict[int, Any]) -> bytes:
    """Create the canonical CBOR of the thumbprint members of a COSE key.

    Raises:
        ValueError: If the key type is unsupported or required members are missing
    """
    kty = cose_key.get(KTY)
    if kty not in REQUIRED_MEMBERS:
        raise ValueError(f"unsupported key type: {kty}")

    filtered = {}
    for label in REQUIRED_MEMBERS[kty]:
        if label not in cose_key:
            raise ValueError(f"required member {label} missing from COSE key")
        filtered[label] = cose_key[label]
    return cbor_utils.encode(filtered)


def cose_key_thumbprint(cose_key: dict[int, Any], alg_id: int = SHA256) -> HashEntry:
    """Compute the RFC 9679 thumbprint of a COSE key as a hash entry."""
    return HashEntry.compute(alg_id, canonical_cbor(cose_key))
