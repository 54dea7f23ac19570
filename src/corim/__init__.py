"""corim: CoRIM, CoMID, CoSWID, CoTS, Concise Evidence and CoSERV in Python."""

# Hide module imports
from . import comid, coev, corim, coserv, coswid, cots, extensions, profiles
from .comid import Comid
from .coev import ConciseEvidence, TaggedConciseEvidence
from .corim import Meta, SignedCorim, UnsignedCorim
from .coserv import Coserv
from .coswid import SoftwareIdentity
from .cots import ConciseTaStore, ConciseTaStores
from .extensions import ExtensionNotFoundError, Map, UnexpectedPointError
from .profiles import (
    ProfileManifest,
    get_profile_manifest,
    register_profile,
    unmarshal_and_validate_signed_corim_from_cbor,
    unmarshal_and_validate_unsigned_corim_from_cbor,
    unmarshal_comid_from_cbor,
    unmarshal_signed_corim_from_cbor,
    unmarshal_unsigned_corim_from_cbor,
)

del comid, coev, corim, coserv, coswid, cots, extensions, profiles

__version__ = "0.1.0"


__all__ = [
    "__version__",
    # Documents
    "Comid",
    "ConciseEvidence",
    "TaggedConciseEvidence",
    "UnsignedCorim",
    "SignedCorim",
    "Meta",
    "Coserv",
    "SoftwareIdentity",
    "ConciseTaStore",
    "ConciseTaStores",
    # Extensions
    "Map",
    "ExtensionNotFoundError",
    "UnexpectedPointError",
    # Profiles
    "ProfileManifest",
    "register_profile",
    "get_profile_manifest",
    "unmarshal_unsigned_corim_from_cbor",
    "unmarshal_signed_corim_from_cbor",
    "unmarshal_comid_from_cbor",
    "unmarshal_and_validate_unsigned_corim_from_cbor",
    "unmarshal_and_validate_signed_corim_from_cbor",
]
