"""Arm CCA endorsement profiles.

Two profiles share this module: the CCA platform profile
(``tag:arm.com,2025:cca_platform#1.0.0``) and the CCA realm profile
(``tag:arm.com,2025:cca_realm#1.0.0``). Both only add checks on the
triples of a CoMID; the platform profile also adds the tag 602 platform
configuration identifier as a measured element type.

Nothing is registered on import: call :func:`register_profile` and
:func:`register_realm_profile` once at start-up.
"""

import dataclasses
import logging
import re
from typing import Any, Optional

from . import cbor_utils, profiles
from .cryptokeys import PKIXBase64KeyVariant
from .encoding import JSONValue, Record, type_name
from .environment import ClassID, Environment, Instance
from .extensions import Map
from .identifiers import BytesVariant, StringVariant, UEIDVariant, variant_factory
from .measurement import MaskedRawValueVariant, Measurement, Mkey
from .triples import KeyTriple, Triples, ValueTriple
from .typechoice import Variant

logger = logging.getLogger(__name__)

PROFILE_ID = "tag:arm.com,2025:cca_platform#1.0.0"
REALM_PROFILE_ID = "tag:arm.com,2025:cca_realm#1.0.0"

TOKEN_PROFILE_ID = "tag:arm.com,2025:cca-token"
ENDORSEMENTS_PROFILE_ID = "tag:arm.com,2025:cca-endorsements"
REALM_ENDORSEMENTS_PROFILE_ID = "tag:arm.com,2025:cca-realm-endorsements"

PLATFORM_CONFIG_ID = "cca.platform-config-id"

SOFTWARE_COMPONENT_MKEY = "cca.software-component"
PLATFORM_CONFIG_MKEY = "cca.platform-config"

REALM_RIM_MKEY = "cca.rim"
REALM_RPV_MKEY = "cca.rpv"
REALM_REM_MKEYS = ("cca.rem0", "cca.rem1", "cca.rem2", "cca.rem3")

IMPL_ID_SIZE = 32
INSTANCE_ID_SIZE = 33
HASH_SIZES = (32, 48, 64)

_TAG_URI = re.compile(
    r"tag:[a-zA-Z0-9.\-]+,\d{4}(-(0[1-9]|1[0-2])(-(0[1-9]|[12][0-9]|3[01]))?)?:.+"
)


def validate_tag_uri(uri: str) -> None:
    """Check that uri is an RFC 4151 ``tag:authority,date:specific`` URI.

    Raises:
        ValueError: If it is not
    """
    if not _TAG_URI.fullmatch(uri):
        raise ValueError(
            f"invalid tag URI format: {uri!r} (expected format: tag:authority,date:specific)"
        )


class PlatformConfigIDVariant(Variant):
    """Measured element key naming a CCA platform configuration (CBOR tag 602)."""

    type_name = PLATFORM_CONFIG_ID
    cbor_tag = cbor_utils.TAG_CCA_PLATFORM_CONFIG_ID

    def __init__(self, value: Optional[Any] = None):
        if value is not None and not isinstance(value, str):
            raise ValueError(
                f"unexpected type for CCA platform config ID: {type_name(value)}"
            )
        super().__init__(value)

    def valid(self) -> None:
        if not self.value:
            raise ValueError("empty CCA platform config ID")

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        if not isinstance(data, str):
            raise ValueError(f"expected a text string, got {type_name(data)}")
        return data

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "PlatformConfigIDVariant":
        return cls(data)


# Identifiers


def check_impl_id(value: bytes) -> None:
    if len(value) != IMPL_ID_SIZE:
        raise ValueError(
            f"wrong Implementation ID size: got {len(value)} bytes, expected {IMPL_ID_SIZE}"
        )


def check_instance_id(value: bytes) -> None:
    if len(value) != INSTANCE_ID_SIZE:
        raise ValueError(
            f"wrong Instance ID size: got {len(value)} bytes, expected {INSTANCE_ID_SIZE}"
        )
    if value[0] != 0x01:
        raise ValueError(f"instance ID must start with 0x01: got 0x{value[0]:02x}")


def check_realm_rim(value: bytes) -> None:
    if len(value) not in HASH_SIZES:
        raise ValueError(
            "wrong Realm Initial Measurement (RIM) size: "
            f"got {len(value)} bytes, expected 32, 48, or 64"
        )


def impl_id_class_id(value: bytes) -> ClassID:
    """Return the tagged-bytes class-id carrying a CCA platform implementation ID."""
    check_impl_id(value)
    return ClassID.new(value, BytesVariant.type_name)


def instance_id(value: bytes) -> Instance:
    """Return the UEID instance carrying a CCA platform instance ID."""
    check_instance_id(value)
    return Instance.new(value, UEIDVariant.type_name)


def realm_rim_class_id(value: bytes) -> ClassID:
    """Return the tagged-bytes class-id carrying a realm initial measurement."""
    check_realm_rim(value)
    return ClassID.new(value, BytesVariant.type_name)


def _env_impl_id(env: Environment) -> None:
    if env.klass is None:
        raise ValueError("environment.class is required for CCA platform profile")
    class_id = env.klass.class_id
    if class_id is None:
        raise ValueError("environment.class.id (implementation-id) is required")
    if class_id.type != BytesVariant.type_name:
        raise ValueError(f"implementation-id must be of type 'bytes', got '{class_id.type}'")
    if len(class_id.value.value) != IMPL_ID_SIZE:
        raise ValueError(
            f"implementation-id must be exactly 32 bytes (got {len(class_id.value.value)})"
        )


def _env_instance_id(env: Environment) -> None:
    if env.instance is None:
        raise ValueError("environment.instance (instance-id) is required")
    if env.instance.type != UEIDVariant.type_name:
        raise ValueError(
            f"instance-id must be of type 'ueid', got '{env.instance.type}'"
        )
    check_instance_id(env.instance.value.value)


def _env_realm_rim(env: Environment) -> None:
    if env.klass is None:
        raise ValueError("environment.class is required for CCA realm profile")
    class_id = env.klass.class_id
    if class_id is None:
        raise ValueError("environment.class.id (RIM) is required")
    if class_id.type != BytesVariant.type_name:
        raise ValueError(f"RIM must be of type 'bytes', got '{class_id.type}'")
    check_realm_rim(class_id.value.value)


# Measurements


def _string_mkey(measurement: Measurement) -> str:
    if measurement.key is None or measurement.key.value is None:
        raise ValueError("mkey is mandatory but not set")
    if measurement.key.type != StringVariant.type_name:
        raise ValueError(f"mkey must be of type 'string', got '{measurement.key.type}'")
    return measurement.key.value.value


def _check_digests(measurement: Measurement, exactly_one: bool = False) -> None:
    digests = measurement.mval.digests
    if digests is None:
        raise ValueError("digests field is mandatory but not set")
    if not digests:
        raise ValueError("digests must contain at least one entry")
    if exactly_one and len(digests) != 1:
        raise ValueError(f"digests must contain exactly one entry, got {len(digests)}")
    for i, entry in enumerate(digests):
        if len(entry.value) not in HASH_SIZES:
            raise ValueError(
                f"digest at index {i}: hash value must be 32, 48, or 64 bytes, "
                f"got {len(entry.value)}"
            )


def _check_signer_id(measurement: Measurement) -> None:
    keys = measurement.mval.cryptokeys
    if keys is None:
        raise ValueError("cryptokeys (signer-id) is mandatory but not set")
    if len(keys) != 1:
        raise ValueError(f"cryptokeys must contain exactly one entry, got {len(keys)}")
    if keys[0].type != BytesVariant.type_name:
        raise ValueError(
            f"cryptokeys (signer-id) must be of type 'bytes', got '{keys[0].type}'"
        )
    size = len(keys[0].value.value)
    if size not in HASH_SIZES:
        raise ValueError(f"signer-id must be 32, 48, or 64 bytes (got {size})")


def _check_software_component(measurement: Measurement) -> None:
    _check_digests(measurement)
    _check_signer_id(measurement)
    version = measurement.mval.version
    if version is not None and version.scheme is not None:
        raise ValueError(
            "version-scheme field MUST NOT be present in cca.software-component"
        )


def _raw_value_bytes(measurement: Measurement, what: str) -> bytes:
    raw = measurement.mval.raw_value
    if raw is None:
        raise ValueError(f"raw-value is mandatory for {what}")
    if raw.type == BytesVariant.type_name:
        return raw.value.value
    if raw.type == MaskedRawValueVariant.type_name:
        return raw.value.value.value
    raise ValueError(f"unable to extract bytes from raw-value of type '{raw.type}'")


def _check_platform_config(measurement: Measurement) -> None:
    _raw_value_bytes(measurement, PLATFORM_CONFIG_MKEY)
    masked = measurement.mval.raw_value.type == MaskedRawValueVariant.type_name
    if measurement.mval.raw_value_mask is None and not masked:
        raise ValueError(f"raw-value-mask is mandatory for {PLATFORM_CONFIG_MKEY}")


def check_platform_reference_value(triple: ValueTriple) -> None:
    """Check a CCA platform reference value.

    It must name a 32 byte implementation ID and carry at least one
    software component and exactly one platform configuration.
    """
    _env_impl_id(triple.environment)
    components = 0
    configs = 0
    for j, measurement in enumerate(triple.measurements):
        try:
            mkey = _string_mkey(measurement)
            if mkey == SOFTWARE_COMPONENT_MKEY:
                _check_software_component(measurement)
                components += 1
            elif mkey == PLATFORM_CONFIG_MKEY:
                _check_platform_config(measurement)
                configs += 1
            else:
                raise ValueError(
                    f'invalid mkey "{mkey}", expected "{SOFTWARE_COMPONENT_MKEY}" '
                    f'or "{PLATFORM_CONFIG_MKEY}"'
                )
        except ValueError as err:
            raise ValueError(f"measurement at index {j}: {err}") from err
    if not components:
        raise ValueError("at least one software component measurement is required")
    if configs != 1:
        raise ValueError(
            f"exactly one platform-config measurement is required, found {configs}"
        )


def check_platform_attest_verif_key(triple: KeyTriple) -> None:
    """Check a CPAK triple: implementation and instance IDs and one PKIX key."""
    _env_impl_id(triple.environment)
    _env_instance_id(triple.environment)
    if len(triple.verif_keys) != 1:
        raise ValueError(
            f"verification-keys must contain exactly one entry, got {len(triple.verif_keys)}"
        )
    key_type = triple.verif_keys[0].type
    if key_type != PKIXBase64KeyVariant.type_name:
        raise ValueError(
            f"verification-key must be of type '{PKIXBase64KeyVariant.type_name}', "
            f"got '{key_type}'"
        )


def check_realm_reference_value(triple: ValueTriple) -> None:
    """Check a CCA realm reference value: a RIM class-id and a cca.rim measurement."""
    _env_realm_rim(triple.environment)
    has_rim = False
    for j, measurement in enumerate(triple.measurements):
        try:
            mkey = _string_mkey(measurement)
            if mkey == REALM_RIM_MKEY:
                _check_digests(measurement, exactly_one=True)
                has_rim = True
            elif mkey in REALM_REM_MKEYS:
                _check_digests(measurement, exactly_one=True)
            elif mkey == REALM_RPV_MKEY:
                _raw_value_bytes(measurement, REALM_RPV_MKEY)
            else:
                raise ValueError(
                    f'invalid mkey "{mkey}", expected "cca.rim", '
                    '"cca.rem0"-"cca.rem3" or "cca.rpv"'
                )
        except ValueError as err:
            raise ValueError(f"measurement at index {j}: {err}") from err
    if not has_rim:
        raise ValueError("RIM (cca.rim) measurement is mandatory but not found")


@dataclasses.dataclass
class PlatformTriplesConstraints(Record):
    """Triples extension enforcing the CCA platform rules."""

    def valid_triples(self, triples: Triples) -> None:
        for i, triple in enumerate(triples.reference_values):
            try:
                check_platform_reference_value(triple)
            except ValueError as err:
                raise ValueError(f"platform reference value at index {i}: {err}") from err
        for i, triple in enumerate(triples.attest_verif_keys):
            try:
                check_platform_attest_verif_key(triple)
            except ValueError as err:
                raise ValueError(
                    f"platform attestation verification key at index {i}: {err}"
                ) from err


@dataclasses.dataclass
class RealmTriplesConstraints(Record):
    """Triples extension enforcing the CCA realm rules."""

    def valid_triples(self, triples: Triples) -> None:
        for i, triple in enumerate(triples.reference_values):
            try:
                check_realm_reference_value(triple)
            except ValueError as err:
                raise ValueError(f"realm reference value at index {i}: {err}") from err


def extensions_map() -> Map:
    return Map().add("Triples", PlatformTriplesConstraints())


def realm_extensions_map() -> Map:
    return Map().add("Triples", RealmTriplesConstraints())


def _register(profile_id: str, exts: Map) -> profiles.ProfileManifest:
    validate_tag_uri(profile_id)
    manifest = profiles.get_profile_manifest(profile_id)
    if manifest is not None:
        return manifest
    manifest = profiles.register_profile(profile_id, exts)
    logger.debug("CCA profile %s registered", profile_id)
    return manifest


def register_profile() -> profiles.ProfileManifest:
    """Register the CCA platform profile and the platform config ID key type.

    Calling it again returns the existing manifest.
    """
    if PLATFORM_CONFIG_ID not in Mkey.type_names():
        Mkey.register_type(
            cbor_utils.TAG_CCA_PLATFORM_CONFIG_ID, variant_factory(PlatformConfigIDVariant)
        )
    return _register(PROFILE_ID, extensions_map())


def register_realm_profile() -> profiles.ProfileManifest:
    """Register the CCA realm profile; idempotent like :func:`register_profile`."""
    return _register(REALM_PROFILE_ID, realm_extensions_map())
