"""Crypto keys: the $crypto-key-type-choice and lists of keys."""

from collections.abc import Mapping
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from . import cbor_utils
from .cose_keys import cose_key_to_public_key
from .digests import CertPathThumbprintVariant, CertThumbprintVariant, ThumbprintVariant
from .encoding import JSONValue, b64decode, b64encode, type_name
from .identifiers import BytesVariant, variant_factory
from .typechoice import TypeChoice, Variant


def _pem_blocks(text: str) -> list[tuple[str, bytes]]:
    """Split PEM text into (label, encoded block) pairs."""
    blocks = []
    rest = text.strip()
    while rest:
        if not rest.startswith("-----BEGIN "):
            raise ValueError("could not decode PEM block")
        label = rest[len("-----BEGIN "):rest.find("-----", len("-----BEGIN "))]
        footer = f"-----END {label}-----"
        end = rest.find(footer)
        if end < 0:
            raise ValueError("could not decode PEM block")
        end += len(footer)
        blocks.append((label, rest[:end].encode("ascii")))
        rest = rest[end:].strip()
    if not blocks:
        raise ValueError("could not decode PEM block")
    return blocks


def _single_pem_block(text: str, want: str) -> bytes:
    blocks = _pem_blocks(text)
    label, block = blocks[0]
    if len(blocks) > 1:
        raise ValueError("trailing data found after PEM block")
    if label != want:
        raise ValueError(f'unexpected PEM block type: "{label}", expected "{want}"')
    return block


class _PEMVariant(Variant):
    def __init__(self, value: Any = None):
        if value is not None and not isinstance(value, str):
            raise ValueError(f"value must be a string; found {type_name(value)}")
        super().__init__(value)

    def valid(self) -> None:
        self.public_key()

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        if not isinstance(data, str):
            raise ValueError(f"expected a PEM string, got {type_name(data)}")
        return data

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "_PEMVariant":
        return cls(data)

    def public_key(self) -> Any:
        raise NotImplementedError


class PKIXBase64KeyVariant(_PEMVariant):
    """PEM SubjectPublicKeyInfo (tag 554)."""

    type_name = "pkix-base64-key"
    cbor_tag = cbor_utils.TAG_PKIX_BASE64_KEY

    def public_key(self) -> Any:
        if not self.value:
            raise ValueError("key value not set")
        block = _single_pem_block(self.value, "PUBLIC KEY")
        try:
            return serialization.load_pem_public_key(block)
        except ValueError as err:
            raise ValueError(f"unable to parse public key: {err}") from err


class PKIXBase64CertVariant(_PEMVariant):
    """PEM X.509 certificate (tag 555)."""

    type_name = "pkix-base64-cert"
    cbor_tag = cbor_utils.TAG_PKIX_BASE64_CERT

    def certificate(self) -> x509.Certificate:
        if not self.value:
            raise ValueError("cert value not set")
        block = _single_pem_block(self.value, "CERTIFICATE")
        try:
            return x509.load_pem_x509_certificate(block)
        except ValueError as err:
            raise ValueError(f"could not parse x509 cert: {err}") from err

    def public_key(self) -> Any:
        return self.certificate().public_key()


class PKIXBase64CertPathVariant(_PEMVariant):
    """PEM certificate chain, leaf first (tag 556)."""

    type_name = "pkix-base64-cert-path"
    cbor_tag = cbor_utils.TAG_PKIX_BASE64_CERT_PATH

    def cert_path(self) -> list[x509.Certificate]:
        if not self.value:
            raise ValueError("cert value not set")
        certs = []
        for i, (label, block) in enumerate(_pem_blocks(self.value)):
            if label != "CERTIFICATE":
                raise ValueError(
                    f'unexpected type for PEM block {i}: "{label}", expected "CERTIFICATE"'
                )
            try:
                certs.append(x509.load_pem_x509_certificate(block))
            except ValueError as err:
                raise ValueError(f"could not parse x509 cert in PEM block {i}: {err}") from err
        return certs

    def public_key(self) -> Any:
        certs = self.cert_path()
        if not certs:
            raise ValueError("empty cert path")
        return certs[0].public_key()


class COSEKeyVariant(Variant):
    """COSE_Key or COSE_KeySet (tag 558); JSON carries the base64 of its CBOR."""

    type_name = "cose-key"
    cbor_tag = cbor_utils.TAG_COSE_KEY

    def __init__(self, value: Any = None):
        if isinstance(value, str):
            value = b64decode(value)
        if isinstance(value, bytes):
            value = cbor_utils.decode(value)
        super().__init__(value)

    def __str__(self) -> str:
        return b64encode(self.to_bytes())

    def to_bytes(self) -> bytes:
        return b"" if self.value is None else cbor_utils.encode(self.value)

    def valid(self) -> None:
        if not self.value:
            raise ValueError("empty COSE_Key bytes")
        self.public_key()

    def public_key(self) -> Any:
        if not self.value:
            raise ValueError("empty COSE_Key value")
        key = self.value
        if isinstance(key, (list, tuple)):
            if not key:
                raise ValueError("empty COSE_KeySet")
            if len(key) > 1:
                raise ValueError("COSE_KeySet contains more than one key")
            key = key[0]
        return cose_key_to_public_key(key)

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        if not isinstance(data, (Mapping, list, tuple)):
            raise ValueError(f"expected a COSE_Key map or key set, got {type_name(data)}")
        return data

    def to_json_value(self) -> JSONValue:
        return str(self)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "COSEKeyVariant":
        if not isinstance(data, str):
            raise ValueError(f"value must be a base64 string; found {type_name(data)}")
        return cls(data)


class CryptoKey(TypeChoice):
    """A verification key, certificate, key thumbprint or opaque key bytes."""

    choice_name = "crypto key"
    label = "crypto-key"

    def public_key(self) -> Any:
        """Return the ``cryptography`` public key carried by this key.

        Raises:
            ValueError: For thumbprint and bytes variants, or malformed keys
        """
        if self.value is None:
            raise ValueError("no value set")
        extract = getattr(self.value, "public_key", None)
        if extract is None:
            raise ValueError(f"cannot get PublicKey from a {self.value.type_name}")
        return extract()


for _tag, _variant in (
    (cbor_utils.TAG_PKIX_BASE64_KEY, PKIXBase64KeyVariant),
    (cbor_utils.TAG_PKIX_BASE64_CERT, PKIXBase64CertVariant),
    (cbor_utils.TAG_PKIX_BASE64_CERT_PATH, PKIXBase64CertPathVariant),
    (cbor_utils.TAG_COSE_KEY, COSEKeyVariant),
    (cbor_utils.TAG_THUMBPRINT, ThumbprintVariant),
    (cbor_utils.TAG_CERT_THUMBPRINT, CertThumbprintVariant),
    (cbor_utils.TAG_CERT_PATH_THUMBPRINT, CertPathThumbprintVariant),
    (cbor_utils.TAG_BYTES, BytesVariant),
):
    CryptoKey.register_type(_tag, variant_factory(_variant))
del _tag, _variant


def register_crypto_key_type(tag: int, factory: Any) -> None:
    """Add a profile-defined crypto key variant."""
    CryptoKey.register_type(tag, factory)


class CryptoKeys(list):
    """Non-empty list of crypto keys."""

    def add(self, key: CryptoKey) -> "CryptoKeys":
        self.append(key)
        return self

    def valid(self) -> None:
        if not self:
            raise ValueError("no keys to validate")
        for i, key in enumerate(self):
            try:
                key.valid()
            except ValueError as err:
                raise ValueError(f"invalid key at index {i}: {err}") from err

    def to_cbor_value(self) -> list:
        return [key.to_cbor_value() for key in self]

    @classmethod
    def from_cbor_value(cls, data: Any) -> "CryptoKeys":
        if not isinstance(data, (list, tuple)):
            raise ValueError(f"expected an array of keys, got {type_name(data)}")
        keys = cls()
        for i, item in enumerate(data):
            try:
                keys.append(CryptoKey.from_cbor_value(item))
            except ValueError as err:
                raise ValueError(f"invalid key at index {i}: {err}") from err
        return keys

    def to_json_value(self) -> list:
        return [key.to_json_value() for key in self]

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "CryptoKeys":
        if not isinstance(data, list):
            raise ValueError(f"expected an array of keys, got {type_name(data)}")
        keys = cls()
        for i, item in enumerate(data):
            try:
                keys.append(CryptoKey.from_json_value(item))
            except ValueError as err:
                raise ValueError(f"invalid key at index {i}: {err}") from err
        return keys
