"""Hash entries and digest lists.

A hash entry is the pair ``[hash-alg-id, hash-value]`` using algorithm ids
from the IANA Named Information Hash Algorithm registry. Its JSON form is the
string ``"<alg-name>;<base64 value>"``.
"""

import hashlib
from typing import Any, Optional

from . import cbor_utils
from .encoding import JSONValue, b64decode, b64encode, type_name
from .typechoice import Variant

SHA256 = 1
SHA256_128 = 2
SHA256_120 = 3
SHA256_96 = 4
SHA256_64 = 5
SHA256_32 = 6
SHA384 = 7
SHA512 = 8
SHA3_224 = 9
SHA3_256 = 10
SHA3_384 = 11
SHA3_512 = 12

# alg id -> (name, value length, hashlib name)
ALGORITHMS = {
    SHA256: ("sha-256", 32, "sha256"),
    SHA256_128: ("sha-256-128", 16, "sha256"),
    SHA256_120: ("sha-256-120", 15, "sha256"),
    SHA256_96: ("sha-256-96", 12, "sha256"),
    SHA256_64: ("sha-256-64", 8, "sha256"),
    SHA256_32: ("sha-256-32", 4, "sha256"),
    SHA384: ("sha-384", 48, "sha384"),
    SHA512: ("sha-512", 64, "sha512"),
    SHA3_224: ("sha3-224", 28, "sha3_224"),
    SHA3_256: ("sha3-256", 32, "sha3_256"),
    SHA3_384: ("sha3-384", 48, "sha3_384"),
    SHA3_512: ("sha3-512", 64, "sha3_512"),
}

_BY_NAME = {name: alg_id for alg_id, (name, _, _) in ALGORITHMS.items()}


def algorithm_name(alg_id: int) -> str:
    entry = ALGORITHMS.get(alg_id)
    return entry[0] if entry else str(alg_id)


def algorithm_id(name: str) -> int:
    """Resolve a registry name (or a decimal id) to an algorithm id.

    Raises:
        ValueError: If the name is neither
    """
    alg_id = _BY_NAME.get(name.lower())
    if alg_id is not None:
        return alg_id
    if name.isdigit():
        return int(name)
    raise ValueError(f"unknown hash algorithm {name!r}")


def valid_hash_entry(alg_id: int, value: bytes) -> None:
    """Check a digest value against the length its algorithm mandates.

    Algorithms outside the registry accept any non-empty value.

    Raises:
        ValueError: On a length mismatch or an empty value
    """
    if isinstance(alg_id, bool) or not isinstance(alg_id, int) or alg_id < 0:
        raise ValueError(f"invalid hash algorithm {alg_id!r}")
    if not isinstance(value, bytes):
        raise ValueError(f"expected digest bytes, got {type_name(value)}")
    entry = ALGORITHMS.get(alg_id)
    if entry is None:
        if not value:
            raise ValueError(f"empty digest for hash algorithm {alg_id}")
        return
    want = entry[1]
    if len(value) != want:
        raise ValueError(
            f"length mismatch for hash algorithm {alg_id}: "
            f"want {want} bytes, got {len(value)}"
        )


class HashEntry:
    """A single ``[alg-id, value]`` digest."""

    def __init__(self, alg_id: int = 0, value: bytes = b""):
        self.alg_id = alg_id
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HashEntry):
            return NotImplemented
        return (self.alg_id, self.value) == (other.alg_id, other.value)

    def __hash__(self) -> int:
        return hash((self.alg_id, self.value))

    def __repr__(self) -> str:
        return f"HashEntry({algorithm_name(self.alg_id)!r}, {self.value.hex()!r})"

    def __str__(self) -> str:
        return f"{algorithm_name(self.alg_id)};{b64encode(self.value)}"

    @classmethod
    def compute(cls, alg_id: int, data: bytes) -> "HashEntry":
        """Hash data with a registry algorithm, truncating where the algorithm says so.

        Raises:
            ValueError: If the algorithm is not in the registry
        """
        entry = ALGORITHMS.get(alg_id)
        if entry is None:
            raise ValueError(f"unknown hash algorithm {alg_id}")
        _, length, hashlib_name = entry
        return cls(alg_id, hashlib.new(hashlib_name, data).digest()[:length])

    def valid(self) -> None:
        valid_hash_entry(self.alg_id, self.value)

    def to_cbor_value(self) -> Any:
        return [self.alg_id, self.value]

    @classmethod
    def from_cbor_value(cls, data: Any) -> "HashEntry":
        if not isinstance(data, (list, tuple)) or len(data) != 2:
            raise ValueError(f"expected a [alg-id, value] pair, got {type_name(data)}")
        alg_id, value = data
        if isinstance(alg_id, bool) or not isinstance(alg_id, int):
            raise ValueError(f"expected an integer hash algorithm, got {type_name(alg_id)}")
        if not isinstance(value, bytes):
            raise ValueError(f"expected digest bytes, got {type_name(value)}")
        return cls(alg_id, value)

    def to_json_value(self) -> JSONValue:
        return str(self)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "HashEntry":
        if not isinstance(data, str) or ";" not in data:
            raise ValueError(f"expected a \"<alg>;<base64>\" string, got {data!r}")
        name, encoded = data.split(";", 1)
        return cls(algorithm_id(name), b64decode(encoded))


class Digests(list):
    """List of hash entries."""

    def add_digest(self, alg_id: int, value: bytes) -> "Digests":
        """Append a digest, refusing algorithm/length mismatches.

        Raises:
            ValueError: If the digest is invalid
        """
        valid_hash_entry(alg_id, value)
        self.append(HashEntry(alg_id, value))
        return self

    def valid(self) -> None:
        for i, entry in enumerate(self):
            try:
                entry.valid()
            except ValueError as err:
                raise ValueError(f"digest at index {i}: {err}") from err

    def to_cbor_value(self) -> list:
        return [entry.to_cbor_value() for entry in self]

    @classmethod
    def from_cbor_value(cls, data: Any) -> "Digests":
        if not isinstance(data, (list, tuple)):
            raise ValueError(f"expected an array of digests, got {type_name(data)}")
        return cls(HashEntry.from_cbor_value(item) for item in data)

    def to_json_value(self) -> list:
        return [entry.to_json_value() for entry in self]

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "Digests":
        if not isinstance(data, list):
            raise ValueError(f"expected an array of digests, got {type_name(data)}")
        return cls(HashEntry.from_json_value(item) for item in data)


class ThumbprintVariant(Variant):
    """Key thumbprint (tag 557); its value is a hash entry."""

    type_name = "thumbprint"
    cbor_tag = cbor_utils.TAG_THUMBPRINT

    def __init__(self, value: Optional[Any] = None):
        if isinstance(value, str):
            value = HashEntry.from_json_value(value)
        super().__init__(value)

    def valid(self) -> None:
        if self.value is None:
            raise ValueError(f"empty {self.type_name}")
        self.value.valid()

    def to_bytes(self) -> bytes:
        return b"" if self.value is None else self.value.value

    def payload_to_cbor(self) -> Any:
        return self.value.to_cbor_value()

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        return HashEntry.from_cbor_value(data)

    def to_json_value(self) -> JSONValue:
        return self.value.to_json_value()

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "ThumbprintVariant":
        return cls(HashEntry.from_json_value(data))


class CertThumbprintVariant(ThumbprintVariant):
    """Certificate thumbprint (tag 559)."""

    type_name = "cert-thumbprint"
    cbor_tag = cbor_utils.TAG_CERT_THUMBPRINT


class CertPathThumbprintVariant(ThumbprintVariant):
    """Certificate path thumbprint (tag 561)."""

    type_name = "cert-path-thumbprint"
    cbor_tag = cbor_utils.TAG_CERT_PATH_THUMBPRINT
