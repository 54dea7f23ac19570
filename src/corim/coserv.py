"""Concise Endorsement and Reference Value Service (CoSERV) queries and results.

A CoSERV object carries a query (the artifact type wanted, a profile and an
environment selector) and, once answered, a result set. It travels either
as base64url-encoded CBOR or wrapped in a COSE_Sign1 envelope.
"""

import base64
import binascii
import dataclasses
import datetime
import enum
import logging
from typing import Any, Optional

from . import cbor_utils, edn_utils
from .cose_sign1 import (
    HEADER_ALG,
    HEADER_CONTENT_TYPE,
    Signer,
    Verifier,
    cose_sign1_sign,
    cose_sign1_verify,
    decode_sign1,
)
from .coswid import NamedCodeKind
from .cryptokeys import CryptoKeys
from .encoding import BYTES, TIME, Record, cbor_field
from .environment import Class, Group, Instance
from .identifiers import Profile
from .triples import KeyTriple, ValueTriple

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/coserv+cbor"


class ArtifactType(enum.IntEnum):
    ENDORSED_VALUES = 0
    TRUST_ANCHORS = 1
    REFERENCE_VALUES = 2

    @property
    def json_name(self) -> str:
        return self.name.lower().replace("_", "-")


class ResultType(enum.IntEnum):
    COLLECTED_ARTIFACTS = 0
    SOURCE_ARTIFACTS = 1
    BOTH = 2

    @property
    def json_name(self) -> str:
        return self.name.lower().replace("_", "-")


ARTIFACT_TYPE = NamedCodeKind("artifact type", ArtifactType)
RESULT_TYPE = NamedCodeKind("result type", ResultType)


@dataclasses.dataclass
class EnvironmentSelector(Record):
    """Selects environments by class, by instance or by group, never a mix."""

    classes: list = cbor_field(0, "classes", [Class], default_factory=list)
    instances: list = cbor_field(1, "instances", [Instance], default_factory=list)
    groups: list = cbor_field(2, "groups", [Group], default_factory=list)

    def add_class(self, klass: Class) -> "EnvironmentSelector":
        self.classes.append(klass)
        return self

    def add_instance(self, instance: Instance) -> "EnvironmentSelector":
        self.instances.append(instance)
        return self

    def add_group(self, group: Group) -> "EnvironmentSelector":
        self.groups.append(group)
        return self

    def valid(self) -> None:
        used = [bool(self.classes), bool(self.instances), bool(self.groups)]
        if not any(used):
            raise ValueError("non-empty<> constraint violation")
        if sum(used) > 1:
            raise ValueError("only one selector type is allowed")

        for what, items in (("class", self.classes), ("instance", self.instances), ("group", self.groups)):
            for i, item in enumerate(items):
                try:
                    item.valid()
                except ValueError as err:
                    raise ValueError(f"invalid {what} at index {i}: {err}") from err


def _valid_quad(authorities: CryptoKeys, triple: Any, what: str) -> None:
    try:
        authorities.valid()
    except ValueError as err:
        raise ValueError(f"authorities validation failed: {err}") from err
    if triple is None:
        raise ValueError(f"missing {what}")
    try:
        triple.valid()
    except ValueError as err:
        raise ValueError(f"{what} validation failed: {err}") from err


@dataclasses.dataclass
class RefValQuad(Record):
    """Reference value triple plus the authorities vouching for it."""

    authorities: CryptoKeys = cbor_field(
        1, "authorities", CryptoKeys, omitempty=False, default_factory=CryptoKeys
    )
    rv_triple: Optional[ValueTriple] = cbor_field(2, "rv-triple", ValueTriple, omitempty=False)

    def valid(self) -> None:
        _valid_quad(self.authorities, self.rv_triple, "rv-triple")


@dataclasses.dataclass
class EndorsedValQuad(Record):
    """Endorsed value triple plus the authorities vouching for it."""

    authorities: CryptoKeys = cbor_field(
        1, "authorities", CryptoKeys, omitempty=False, default_factory=CryptoKeys
    )
    ev_triple: Optional[ValueTriple] = cbor_field(2, "ev-triple", ValueTriple, omitempty=False)

    def valid(self) -> None:
        _valid_quad(self.authorities, self.ev_triple, "ev-triple")


@dataclasses.dataclass
class AKQuad(Record):
    """Attestation key triple plus the authorities vouching for it."""

    authorities: CryptoKeys = cbor_field(
        1, "authorities", CryptoKeys, omitempty=False, default_factory=CryptoKeys
    )
    ak_triple: Optional[KeyTriple] = cbor_field(2, "ak-triple", KeyTriple, omitempty=False)

    def valid(self) -> None:
        _valid_quad(self.authorities, self.ak_triple, "ak-triple")


@dataclasses.dataclass
class ResultSet(Record):
    """Answer to a query: quads, an expiry and optionally the source artifacts."""

    rvq: list = cbor_field(0, "rvq", [RefValQuad], default_factory=list)
    evq: list = cbor_field(1, "evq", [EndorsedValQuad], default_factory=list)
    akq: list = cbor_field(3, "akq", [AKQuad], default_factory=list)
    expiry: Optional[datetime.datetime] = cbor_field(10, "expiry", TIME, omitempty=False)
    source_artifacts: list = cbor_field(11, "source-artifacts", [BYTES], default_factory=list)

    def add_reference_values(self, quad: RefValQuad) -> "ResultSet":
        self.rvq.append(quad)
        return self

    def add_endorsed_values(self, quad: EndorsedValQuad) -> "ResultSet":
        self.evq.append(quad)
        return self

    def add_attestation_keys(self, quad: AKQuad) -> "ResultSet":
        self.akq.append(quad)
        return self

    def add_source_artifact(self, artifact: bytes) -> "ResultSet":
        self.source_artifacts.append(artifact)
        return self

    def set_expiry(self, expiry: datetime.datetime) -> "ResultSet":
        self.expiry = expiry
        return self

    def valid(self) -> None:
        if self.expiry is None:
            raise ValueError("missing mandatory expiry")
        for what, quads in (("rvq", self.rvq), ("evq", self.evq), ("akq", self.akq)):
            for i, quad in enumerate(quads):
                try:
                    quad.valid()
                except ValueError as err:
                    raise ValueError(f"invalid {what} at index {i}: {err}") from err


@dataclasses.dataclass
class Coserv(Record):
    """coserv-map.

    Example:
        >>> selector = EnvironmentSelector().add_class(klass)
        >>> query = Coserv.create(PROFILE, ArtifactType.REFERENCE_VALUES, selector)
        >>> query.to_base64url()
    """

    artifact_type: Optional[ArtifactType] = cbor_field(
        0, "artifact-type", ARTIFACT_TYPE, omitempty=False
    )
    profile: Optional[Profile] = cbor_field(1, "profile", Profile, omitempty=False)
    environment_selector: EnvironmentSelector = cbor_field(
        2, "environment-selector", EnvironmentSelector, omitempty=False,
        default_factory=EnvironmentSelector,
    )
    timestamp: Optional[datetime.datetime] = cbor_field(3, "timestamp", TIME)
    result_type: Optional[ResultType] = cbor_field(4, "result-type", RESULT_TYPE)
    results: Optional[ResultSet] = cbor_field(5, "results", ResultSet)

    @classmethod
    def create(
        cls,
        profile: str,
        artifact_type: ArtifactType,
        selector: EnvironmentSelector,
        result_type: Optional[ResultType] = None,
        timestamp: Optional[datetime.datetime] = None,
    ) -> "Coserv":
        """Build a query.

        Raises:
            ValueError: If the profile or the selector are not valid
        """
        try:
            prof = Profile(profile)
        except ValueError as err:
            raise ValueError(f"invalid profile: {err}") from err
        try:
            selector.valid()
        except ValueError as err:
            raise ValueError(f"invalid environment selector: {err}") from err
        return cls(
            artifact_type=ARTIFACT_TYPE.coerce(artifact_type),
            profile=prof,
            environment_selector=selector,
            timestamp=timestamp,
            result_type=None if result_type is None else RESULT_TYPE.coerce(result_type),
        )

    def add_results(self, results: ResultSet) -> "Coserv":
        try:
            results.valid()
        except ValueError as err:
            raise ValueError(f"invalid result set: {err}") from err
        self.results = results
        return self

    def valid(self) -> None:
        if self.artifact_type is None:
            raise ValueError("missing mandatory artifact-type")
        if self.profile is None:
            raise ValueError("missing mandatory profile")
        try:
            self.environment_selector.valid()
        except ValueError as err:
            raise ValueError(f"invalid environment selector: {err}") from err
        if self.results is not None:
            try:
                self.results.valid()
            except ValueError as err:
                raise ValueError(f"invalid result set: {err}") from err

    def to_cbor(self) -> bytes:
        try:
            self.valid()
        except ValueError as err:
            raise ValueError(f"validating CoSERV: {err}") from err
        return cbor_utils.encode(self.to_cbor_value())

    def from_cbor(self, data: bytes) -> "Coserv":
        try:
            self.populate_cbor(cbor_utils.decode(data))
        except ValueError as err:
            raise ValueError(f"decoding CoSERV from CBOR: {err}") from err
        try:
            self.valid()
        except ValueError as err:
            raise ValueError(f"validating CoSERV: {err}") from err
        return self

    def to_base64url(self) -> str:
        """Encode as unpadded base64url CBOR, as used in query URLs."""
        return base64.urlsafe_b64encode(self.to_cbor()).rstrip(b"=").decode("ascii")

    def from_base64url(self, text: str) -> "Coserv":
        padded = text + "=" * (-len(text) % 4)
        try:
            data = base64.b64decode(padded, altchars=b"-_", validate=True)
        except (binascii.Error, ValueError) as err:
            raise ValueError(f"decoding CoSERV: illegal base64 data: {err}") from err
        return self.from_cbor(data)

    def to_edn(self) -> str:
        """Render the CBOR encoding in diagnostic notation."""
        return edn_utils.cbor_to_diag(self.to_cbor())

    def sign(self, signer: Signer) -> bytes:
        """Wrap the encoded object in a COSE_Sign1 envelope."""
        protected = {HEADER_ALG: signer.algorithm, HEADER_CONTENT_TYPE: CONTENT_TYPE}
        return cose_sign1_sign(self.to_cbor(), signer, protected)

    def verify(self, verifier: Verifier, data: bytes) -> "Coserv":
        """Check a signed CoSERV and populate this object from its payload.

        Raises:
            ValueError: If the envelope is malformed, the headers are wrong,
                the signature does not verify or the payload is invalid
        """
        try:
            message = decode_sign1(data)
        except ValueError as err:
            raise ValueError(f"CBOR decoding signed-coserv: {err}") from err

        if HEADER_CONTENT_TYPE not in message.protected:
            raise ValueError("missing mandatory cty parameter in signed-coserv protected headers")
        content_type = message.protected[HEADER_CONTENT_TYPE]
        if content_type != CONTENT_TYPE:
            raise ValueError(f"unexpected content type in signed-coserv: {content_type}")
        if HEADER_ALG not in message.protected:
            raise ValueError("missing mandatory alg parameter in signed-coserv protected headers")

        ok, payload = cose_sign1_verify(data, verifier)
        if not ok:
            raise ValueError("signed-coserv signature verification failed")
        logger.debug("verified signed-coserv of %d bytes", len(data))

        try:
            self.from_cbor(payload)
        except ValueError as err:
            raise ValueError(f"CBOR decoding signed-coserv payload: {err}") from err
        return self
