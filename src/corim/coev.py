"""Concise Evidence (CoEv): attester claims expressed as triples."""

import dataclasses
import logging
from typing import Any, Optional

from . import cbor_utils
from .encoding import Record, cbor_field, extensions_field
from .extensions import Extensible, Extensions, Map
from .identifiers import Profile, UUIDVariant, variant_factory
from .triples import (
    CoSWIDTriple,
    CoSWIDTriples,
    DependencyTriple,
    DependencyTriples,
    KeyTriple,
    KeyTriples,
    MembershipTriple,
    MembershipTriples,
    ValueTriple,
    ValueTriples,
    route_measurement_extensions,
)
from .typechoice import TypeChoice

logger = logging.getLogger(__name__)


class EvidenceID(TypeChoice):
    """Identifier of a piece of evidence (currently always a UUID)."""

    choice_name = "EvidenceID"
    label = "evidence-id"

    @classmethod
    def from_uuid(cls, value: Any) -> "EvidenceID":
        return cls.new(value, UUIDVariant.type_name)

    def valid(self) -> None:
        if self.value is None or not str(self.value):
            raise ValueError("no EvidenceID")
        try:
            self.variant(UUIDVariant).valid()
        except ValueError as err:
            raise ValueError(f"unable to fetch valid UUID: {err}") from err


EvidenceID.register_type(cbor_utils.TAG_UUID, variant_factory(UUIDVariant))


def register_evidence_id_type(tag: Optional[int], factory: Any) -> None:
    EvidenceID.register_type(tag, factory)


_EVIDENCE_POINTS = {
    "EvidenceTriples": ("evidence_triples", "Mval"),
    "EvidenceTriplesFlags": ("evidence_triples", "Flags"),
}


@dataclasses.dataclass
class EvTriples(Extensible, Record):
    """ev-triples-map."""

    extension_points = ("EvTriples",) + tuple(_EVIDENCE_POINTS)

    evidence_triples: ValueTriples = cbor_field(
        0, "evidence-triples", ValueTriples, default_factory=ValueTriples
    )
    identity_triples: KeyTriples = cbor_field(
        1, "identity-triples", KeyTriples, default_factory=KeyTriples
    )
    dependency_triples: DependencyTriples = cbor_field(
        2, "dependency-triples", DependencyTriples, default_factory=DependencyTriples
    )
    membership_triples: MembershipTriples = cbor_field(
        3, "membership-triples", MembershipTriples, default_factory=MembershipTriples
    )
    coswid_triples: CoSWIDTriples = cbor_field(
        4, "coswid-triples", CoSWIDTriples, default_factory=CoSWIDTriples
    )
    attest_key_triples: KeyTriples = cbor_field(
        5, "attestkey-triples", KeyTriples, default_factory=KeyTriples
    )
    extensions: Extensions = extensions_field()

    def register_extensions(self, exts: Map) -> None:
        route_measurement_extensions(self, exts, _EVIDENCE_POINTS, "EvTriples")

    def add_evidence_triple(self, triple: ValueTriple) -> "EvTriples":
        self.evidence_triples.add(triple)
        return self

    def add_identity_triple(self, triple: KeyTriple) -> "EvTriples":
        self.identity_triples.add(triple)
        return self

    def add_dependency_triple(self, triple: DependencyTriple) -> "EvTriples":
        self.dependency_triples.add(triple)
        return self

    def add_membership_triple(self, triple: MembershipTriple) -> "EvTriples":
        self.membership_triples.add(triple)
        return self

    def add_coswid_triple(self, triple: CoSWIDTriple) -> "EvTriples":
        self.coswid_triples.add(triple)
        return self

    def add_attest_key_triple(self, triple: KeyTriple) -> "EvTriples":
        self.attest_key_triples.add(triple)
        return self

    def is_set(self) -> bool:
        return any(
            (
                self.evidence_triples,
                self.identity_triples,
                self.dependency_triples,
                self.membership_triples,
                self.coswid_triples,
                self.attest_key_triples,
            )
        )

    def valid(self) -> None:
        if not self.is_set():
            raise ValueError("no Triples set inside EvTriples")

        if self.evidence_triples:
            try:
                self.evidence_triples.valid()
            except ValueError as err:
                raise ValueError(f"invalid EvidenceTriples: {err}") from err

        for what, triples in (
            ("IdentityTriples", self.identity_triples),
            ("CoSWIDTriples", self.coswid_triples),
            ("AttestKeysTriple", self.attest_key_triples),
        ):
            for i, triple in enumerate(triples):
                try:
                    triple.valid()
                except ValueError as err:
                    raise ValueError(f"invalid {what} at index: {i}, {err}") from err

        for what, triples in (
            ("DependencyTriples", self.dependency_triples),
            ("MembershipTriples", self.membership_triples),
        ):
            if triples:
                try:
                    triples.valid()
                except ValueError as err:
                    raise ValueError(f"invalid {what}: {err}") from err

        self.extensions.valid()


@dataclasses.dataclass
class ConciseEvidence(Extensible, Record):
    """concise-evidence-map: ``{0: ev-triples, ? 1: evidence-id, ? 2: profile}``.

    Example:
        >>> ev = ConciseEvidence()
        >>> ev.add_triples(EvTriples().add_evidence_triple(triple))
        >>> data = ev.to_cbor()
    """

    extension_points = ("ConciseEvidence",) + EvTriples.extension_points

    ev_triples: EvTriples = cbor_field(
        0, "ev-triples", EvTriples, omitempty=False, default_factory=EvTriples
    )
    evidence_id: Optional[EvidenceID] = cbor_field(1, "evidence-id", EvidenceID)
    profile: Optional[Profile] = cbor_field(2, "profile", Profile)
    extensions: Extensions = extensions_field()

    def register_extensions(self, exts: Map) -> None:
        triples_exts = Map()
        for point, value in exts.items():
            if point == "ConciseEvidence":
                self.extensions.register(value)
            else:
                triples_exts.add(point, value)
        if triples_exts:
            self.ev_triples.register_extensions(triples_exts)

    def add_triples(self, ev_triples: EvTriples) -> "ConciseEvidence":
        if ev_triples is None:
            raise ValueError("no evidence triples")
        try:
            ev_triples.valid()
        except ValueError as err:
            raise ValueError(f"invalid evidence triples: {err}") from err
        self.ev_triples = ev_triples
        return self

    def add_evidence_id(self, evidence_id: EvidenceID) -> "ConciseEvidence":
        if evidence_id is None:
            raise ValueError("no evidence id supplied")
        try:
            evidence_id.valid()
        except ValueError as err:
            raise ValueError(f"invalid EvidenceID: {err}") from err
        self.evidence_id = evidence_id
        return self

    def add_profile(self, url_or_oid: str) -> "ConciseEvidence":
        self.profile = Profile(url_or_oid)
        return self

    def valid(self) -> None:
        try:
            self.ev_triples.valid()
        except ValueError as err:
            raise ValueError(f"invalid EvTriples: {err}") from err
        if self.evidence_id is not None:
            try:
                self.evidence_id.valid()
            except ValueError as err:
                raise ValueError(f"invalid EvidenceID: {err}") from err
        self.extensions.valid()
        self.extensions.constrain("constrain_concise_evidence", self)


@dataclasses.dataclass
class TaggedConciseEvidence(ConciseEvidence):
    """Concise Evidence carried under CBOR tag 571 (``D9 02 3B`` prefix)."""

    @classmethod
    def wrap(cls, evidence: ConciseEvidence) -> "TaggedConciseEvidence":
        """Build the tagged form of an existing, valid, ConciseEvidence.

        Raises:
            ValueError: If evidence is missing or not valid
        """
        if evidence is None:
            raise ValueError("non existent concise evidence")
        try:
            evidence.valid()
        except ValueError as err:
            raise ValueError(f"concise Evidence is not valid: {err}") from err
        return cls(**{f.name: getattr(evidence, f.name) for f in dataclasses.fields(evidence)})

    def to_cbor(self) -> bytes:
        return cbor_utils.tag_prefix(cbor_utils.TAG_CONCISE_EVIDENCE) + super().to_cbor()

    def from_cbor(self, data: bytes) -> "TaggedConciseEvidence":
        body = cbor_utils.strip_tag_prefix(data, cbor_utils.TAG_CONCISE_EVIDENCE, "concise evidence")
        super().from_cbor(body)
        return self
