"""Profile registry.

A profile is identified by an absolute URI or an OID and bundles the
extension values that documents claiming the profile carry. Profiles are
registered at start-up by explicit calls (see :mod:`corim.psa` and
:mod:`corim.tdx`) and looked up when a document names its profile.

Example:
    >>> exts = Map().add("ReferenceValue", MyMvalExtension())
    >>> register_profile("https://example.com/my-profile", exts)
    >>> rim = unmarshal_unsigned_corim_from_cbor(data)
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from . import cbor_utils
from .coev import ConciseEvidence
from .comid import Comid
from .corim import SignedCorim, UnsignedCorim
from .cose_sign1 import decode_sign1
from .encoding import JSONValue, json_loads
from .extensions import Map, UnexpectedPointError, check_extension_value
from .identifiers import Profile

logger = logging.getLogger(__name__)

ProfileID = Union[str, Profile]


def _as_profile(profile_id: ProfileID) -> Profile:
    if isinstance(profile_id, Profile):
        return profile_id
    return Profile(profile_id)


class ProfileManifest:
    """Extension values of a profile, and factories for extended documents.

    Each factory returns a fresh document with fresh extension values
    registered at the points that document hosts.
    """

    def __init__(self, profile_id: ProfileID, map_extensions: Optional[Map] = None):
        self.id = _as_profile(profile_id)
        self.map_extensions = Map(map_extensions or {})

    def __repr__(self) -> str:
        return f"ProfileManifest({self.id.value!r}, {sorted(self.map_extensions)})"

    def _extend(self, doc: Any, points: tuple) -> Any:
        exts = Map(
            (point, value) for point, value in self.map_extensions.items() if point in points
        ).clone()
        if exts:
            doc.register_extensions(exts)
        return doc

    def get_comid(self) -> Comid:
        return self._extend(Comid(), Comid.extension_points)

    def get_unsigned_corim(self) -> UnsignedCorim:
        return self._extend(UnsignedCorim(), UnsignedCorim.extension_points)

    def get_signed_corim(self) -> SignedCorim:
        return self._extend(SignedCorim(), SignedCorim.extension_points)

    def get_concise_evidence(self) -> ConciseEvidence:
        return self._extend(ConciseEvidence(), ConciseEvidence.extension_points)


_KNOWN_POINTS = frozenset(
    Comid.extension_points
    + UnsignedCorim.extension_points
    + SignedCorim.extension_points
    + ConciseEvidence.extension_points
)

_profiles: dict[str, ProfileManifest] = {}


def register_profile(profile_id: ProfileID, exts: Map) -> ProfileManifest:
    """Register a profile and its extension values.

    Args:
        profile_id: Absolute URI or dotted OID string, or a Profile
        exts: Extension values keyed by extension point

    Returns:
        The registered manifest

    Raises:
        ValueError: If the id is not a URI or an OID, or is already registered
        UnexpectedPointError: If exts names a point no document hosts
        TypeError: If an extension value is not a record instance
    """
    profile = _as_profile(profile_id)
    if profile.value in _profiles:
        raise ValueError(f'profile with id "{profile.value}" already registered')

    for point, value in exts.items():
        check_extension_value(value)
        if point not in _KNOWN_POINTS:
            raise UnexpectedPointError(point)

    manifest = ProfileManifest(profile, exts)
    # fail now if a document rejects the extension values
    manifest.get_comid()
    manifest.get_unsigned_corim()
    manifest.get_signed_corim()
    manifest.get_concise_evidence()

    _profiles[profile.value] = manifest
    logger.debug("Registered profile %s with points %s", profile.value, sorted(exts))
    return manifest


def unregister_profile(profile_id: ProfileID) -> bool:
    """Remove a profile; returns whether it was registered."""
    key = profile_id.value if isinstance(profile_id, Profile) else profile_id
    removed = _profiles.pop(key, None) is not None
    if removed:
        logger.debug("Unregistered profile %s", key)
    return removed


def get_profile_manifest(profile_id: Optional[ProfileID]) -> Optional[ProfileManifest]:
    """Look up a registered profile; None (or an unknown id) yields None."""
    if profile_id is None:
        return None
    key = profile_id.value if isinstance(profile_id, Profile) else profile_id
    return _profiles.get(key)


def registered_profiles() -> list[str]:
    return sorted(_profiles)


# Profile-aware decoding


def _strip_optional_prefix(data: bytes, tag: int) -> bytes:
    prefix = cbor_utils.tag_prefix(tag)
    if bytes(data[: len(prefix)]) == prefix:
        return data[len(prefix) :]
    return data


def _profile_from_cbor(raw: Any, key: int) -> Optional[Profile]:
    if not isinstance(raw, Mapping) or key not in raw:
        return None
    try:
        return Profile.from_cbor_value(raw[key])
    except ValueError as err:
        raise ValueError(f"profile validation failed: {err}") from err


def _profile_from_json(raw: JSONValue, key: str) -> Optional[Profile]:
    if not isinstance(raw, dict) or key not in raw:
        return None
    try:
        return Profile.from_json_value(raw[key])
    except ValueError as err:
        raise ValueError(f"profile validation failed: {err}") from err


def unmarshal_unsigned_corim_from_cbor(data: bytes) -> UnsignedCorim:
    """Decode an unsigned CoRIM (tagged or not), extended per its profile.

    Raises:
        ValueError: If the data does not decode or validate
    """
    raw = cbor_utils.decode(_strip_optional_prefix(data, cbor_utils.TAG_UNSIGNED_CORIM))
    manifest = get_profile_manifest(_profile_from_cbor(raw, 3))
    rim = manifest.get_unsigned_corim() if manifest else UnsignedCorim()
    return rim.from_cbor(data)


def unmarshal_unsigned_corim_from_json(data: Union[str, bytes]) -> UnsignedCorim:
    manifest = get_profile_manifest(_profile_from_json(json_loads(data), "profile"))
    rim = manifest.get_unsigned_corim() if manifest else UnsignedCorim()
    return rim.from_json(data)


def unmarshal_signed_corim_from_cbor(data: bytes) -> SignedCorim:
    """Decode a signed CoRIM, extended per the profile of its payload.

    The signature is not checked; call ``verify`` on the result.
    """
    try:
        message = decode_sign1(data)
    except ValueError as err:
        raise ValueError(f"failed CBOR decoding for COSE-Sign1 signed CoRIM: {err}") from err

    profile = None
    if message.payload:
        try:
            raw = cbor_utils.decode(
                _strip_optional_prefix(message.payload, cbor_utils.TAG_UNSIGNED_CORIM)
            )
        except ValueError as err:
            raise ValueError(f"failed CBOR decoding of unsigned CoRIM: {err}") from err
        profile = _profile_from_cbor(raw, 3)

    manifest = get_profile_manifest(profile)
    signed = manifest.get_signed_corim() if manifest else SignedCorim()
    return signed.from_cose(data)


def unmarshal_comid_from_cbor(data: bytes, profile: Optional[ProfileID] = None) -> Comid:
    """Decode a CoMID, extended per profile when that profile is registered."""
    manifest = get_profile_manifest(profile)
    comid = manifest.get_comid() if manifest else Comid()
    return comid.from_cbor(_strip_optional_prefix(data, cbor_utils.TAG_COMID))


def unmarshal_comid_from_json(data: Union[str, bytes], profile: Optional[ProfileID] = None) -> Comid:
    manifest = get_profile_manifest(profile)
    comid = manifest.get_comid() if manifest else Comid()
    return comid.from_json(data)


def unmarshal_concise_evidence_from_cbor(data: bytes) -> ConciseEvidence:
    """Decode Concise Evidence (tagged or not), extended per its profile."""
    body = _strip_optional_prefix(data, cbor_utils.TAG_CONCISE_EVIDENCE)
    manifest = get_profile_manifest(_profile_from_cbor(cbor_utils.decode(body), 2))
    evidence = manifest.get_concise_evidence() if manifest else ConciseEvidence()
    return evidence.from_cbor(body)


def unmarshal_concise_evidence_from_json(data: Union[str, bytes]) -> ConciseEvidence:
    manifest = get_profile_manifest(_profile_from_json(json_loads(data), "profile"))
    evidence = manifest.get_concise_evidence() if manifest else ConciseEvidence()
    return evidence.from_json(data)


def _validate_comids(rim: UnsignedCorim) -> None:
    for i, tag in enumerate(rim.iter_tags()):
        if tag.number != cbor_utils.TAG_COMID:
            continue
        try:
            unmarshal_comid_from_cbor(tag.content, rim.profile)
        except ValueError as err:
            raise ValueError(f"CoMID tag at index {i}: {err}") from err


def unmarshal_and_validate_unsigned_corim_from_cbor(data: bytes) -> UnsignedCorim:
    """Decode an unsigned CoRIM and validate every embedded CoMID under its profile.

    Raises:
        ValueError: If the CoRIM or one of its CoMIDs is not valid
    """
    rim = unmarshal_unsigned_corim_from_cbor(data)
    _validate_comids(rim)
    return rim


def unmarshal_and_validate_unsigned_corim_from_json(data: Union[str, bytes]) -> UnsignedCorim:
    rim = unmarshal_unsigned_corim_from_json(data)
    _validate_comids(rim)
    return rim


def unmarshal_and_validate_signed_corim_from_cbor(data: bytes) -> SignedCorim:
    signed = unmarshal_signed_corim_from_cbor(data)
    _validate_comids(signed.unsigned_corim)
    return signed

