"""PSA endorsements profile (``tag:arm.com,2025:psa#1.0.0``).

Adds the ``psa.software-component`` measured element type, the PSA
certification number measurement value and checks on PSA software
component reference values. Nothing is registered on import: call
:func:`register_profile` once at start-up.
"""

import dataclasses
import logging
import re
from typing import Any, Optional

from . import profiles
from .comid import Comid
from .digests import algorithm_name
from .encoding import TEXT, JSONValue, Record, cbor_field, type_name
from .extensions import Map
from .identifiers import variant_factory
from .measurement import Mkey, PSARefValIDVariant
from .typechoice import Variant

logger = logging.getLogger(__name__)

PROFILE_ID = "tag:arm.com,2025:psa#1.0.0"

TAG_PSA_SOFTWARE_COMPONENT = 800
SOFTWARE_COMPONENT = "psa.software-component"

_CERT_NUM_PATTERN = re.compile(r"^[0-9]{13} - [0-9]{5}$")


class SoftwareComponentKeyVariant(Variant):
    """Measured element key naming a PSA software component (CBOR tag 800)."""

    type_name = SOFTWARE_COMPONENT
    cbor_tag = TAG_PSA_SOFTWARE_COMPONENT

    def __init__(self, value: Optional[Any] = None):
        if value is not None and not isinstance(value, str):
            raise ValueError(
                f"unexpected type for PSA software component key: {type_name(value)}"
            )
        super().__init__(value)

    def valid(self) -> None:
        if self.value != SOFTWARE_COMPONENT:
            raise ValueError(
                f'invalid PSA software component key: expected "{SOFTWARE_COMPONENT}", '
                f'got "{self.value}"'
            )

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        if not isinstance(data, str):
            raise ValueError(f"expected a text string, got {type_name(data)}")
        return data

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "SoftwareComponentKeyVariant":
        return cls(data)


def check_cert_num(value: str) -> None:
    """Check a PSA Certified security assurance certificate number.

    Raises:
        ValueError: If value does not look like ``1234567890123 - 12345``
    """
    if not _CERT_NUM_PATTERN.match(value):
        raise ValueError(
            "invalid PSA certificate number format: must match pattern "
            f"'[0-9]{{13}} - [0-9]{{5}}', got '{value}'"
        )


@dataclasses.dataclass
class CertNum(Record):
    """Measurement value extension carrying the PSA certification number."""

    cert_num: Optional[str] = cbor_field(100, "psa-cert-num", TEXT)

    def valid(self) -> None:
        if self.cert_num is not None:
            check_cert_num(self.cert_num)


def _check_software_component(mval: Any) -> None:
    if not mval.digests:
        raise ValueError("digests field is mandatory and must contain at least one entry")
    seen = set()
    for entry in mval.digests:
        if entry.alg_id in seen:
            raise ValueError(f"duplicate digest algorithm: {algorithm_name(entry.alg_id)}")
        seen.add(entry.alg_id)
    keys = mval.cryptokeys
    if keys is not None and len(keys) != 1:
        raise ValueError("cryptokeys field must contain exactly one entry")


def _check_refval_id(measurement: Any) -> None:
    if not measurement.mval.digests:
        raise ValueError("missing digests for PSA reference value")


@dataclasses.dataclass
class ComidConstraints(Record):
    """CoMID extension enforcing PSA rules on reference values.

    It carries no fields: its only role is the ``constrain_comid`` hook.
    """

    def constrain_comid(self, comid: Comid) -> None:
        for i, triple in enumerate(comid.iter_ref_vals()):
            for j, measurement in enumerate(triple.measurements):
                key_type = measurement.key.type if measurement.key is not None else ""
                try:
                    if key_type == SOFTWARE_COMPONENT:
                        _check_software_component(measurement.mval)
                    elif key_type == PSARefValIDVariant.type_name:
                        _check_refval_id(measurement)
                except ValueError as err:
                    raise ValueError(
                        f"PSA reference value at index {i}, measurement {j}: {err}"
                    ) from err


def extensions_map() -> Map:
    return (
        Map()
        .add("Comid", ComidConstraints())
        .add("ReferenceValue", CertNum())
        .add("EndorsedValue", CertNum())
    )


def register_profile() -> profiles.ProfileManifest:
    """Register the PSA profile and its measured element type.

    Calling it again returns the existing manifest.
    """
    if SOFTWARE_COMPONENT not in Mkey.type_names():
        Mkey.register_type(
            TAG_PSA_SOFTWARE_COMPONENT, variant_factory(SoftwareComponentKeyVariant)
        )

    manifest = profiles.get_profile_manifest(PROFILE_ID)
    if manifest is not None:
        return manifest
    manifest = profiles.register_profile(PROFILE_ID, extensions_map())
    logger.debug("PSA profile registered")
    return manifest
