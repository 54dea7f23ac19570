"""Triples: assertions binding an environment to measurements, keys or other environments.

CoMID documents group their triples in a :class:`Triples` map keyed by
triple kind; Concise Evidence reuses the individual triple records.
"""

import dataclasses
import logging
from typing import Any, Optional

from .coswid import Evidence, TagID
from .cryptokeys import CryptoKey, CryptoKeys
from .encoding import Record, cbor_field, extensions_field
from .environment import Environment
from .extensions import Collection, Extensible, Extensions, Map, UnexpectedPointError
from .measurement import Measurement, Measurements

logger = logging.getLogger(__name__)


def _check_environment(env: Environment) -> Environment:
    if env is None:
        raise ValueError("no environment to add")
    try:
        env.valid()
    except ValueError as err:
        raise ValueError(f"environment is not valid: {err}") from err
    return env


@dataclasses.dataclass
class ValueTriple(Record):
    """``[environment, [measurement...]]`` (reference, endorsed or evidence values)."""

    _toarray = True

    environment: Environment = cbor_field(
        0, "environment", Environment, omitempty=False, default_factory=Environment
    )
    measurements: Measurements = cbor_field(
        1, "measurements", Measurements, omitempty=False, default_factory=Measurements
    )

    def register_extensions(self, exts: Map) -> None:
        self.measurements.register_extensions(exts)

    def get_extensions(self) -> Optional[Map]:
        return self.measurements.get_extensions()

    def set_environment(self, env: Environment) -> "ValueTriple":
        self.environment = _check_environment(env)
        return self

    def add_measurement(self, m: Measurement) -> "ValueTriple":
        self.measurements.add(m)
        return self

    def valid(self) -> None:
        try:
            self.environment.valid()
        except ValueError as err:
            raise ValueError(f"environment validation failed: {err}") from err
        try:
            self.measurements.valid()
        except ValueError as err:
            raise ValueError(f"measurements validation failed: {err}") from err


class ValueTriples(Collection[ValueTriple]):
    item_type = ValueTriple
    item_label = "value triple"


@dataclasses.dataclass
class KeyTriple(Record):
    """``[environment, [crypto-key...]]`` (identity or attestation keys)."""

    _toarray = True

    environment: Environment = cbor_field(
        0, "environment", Environment, omitempty=False, default_factory=Environment
    )
    verif_keys: CryptoKeys = cbor_field(
        1, "verification-keys", CryptoKeys, omitempty=False, default_factory=CryptoKeys
    )

    def set_environment(self, env: Environment) -> "KeyTriple":
        self.environment = _check_environment(env)
        return self

    def add_key(self, key: CryptoKey) -> "KeyTriple":
        self.verif_keys.add(key)
        return self

    def valid(self) -> None:
        try:
            self.environment.valid()
        except ValueError as err:
            raise ValueError(f"environment validation failed: {err}") from err
        try:
            self.verif_keys.valid()
        except ValueError as err:
            raise ValueError(f"verification keys validation failed: {err}") from err


class KeyTriples(Collection[KeyTriple]):
    item_type = KeyTriple
    item_label = "key triple"


# Conditional endorsement series


@dataclasses.dataclass
class CondEndorseSeriesRecord(Record):
    """``[selection, addition]``: measurements to match and the ones they endorse."""

    _toarray = True

    selection: Measurements = cbor_field(
        0, "selection", Measurements, omitempty=False, default_factory=Measurements
    )
    addition: Measurements = cbor_field(
        1, "addition", Measurements, omitempty=False, default_factory=Measurements
    )

    def register_extensions(self, exts: Map) -> None:
        self.selection.register_extensions(exts)
        self.addition.register_extensions(exts)

    def get_extensions(self) -> Optional[Map]:
        return self.addition.get_extensions()

    def valid(self) -> None:
        try:
            self.selection.valid()
        except ValueError as err:
            raise ValueError(f"selection validation failed: {err}") from err
        try:
            self.addition.valid()
        except ValueError as err:
            raise ValueError(f"addition validation failed: {err}") from err


class CondEndorseSeriesRecords(Collection[CondEndorseSeriesRecord]):
    item_type = CondEndorseSeriesRecord
    item_label = "series record"


@dataclasses.dataclass
class CondEndorseSeriesTriple(Record):
    """``[condition, [[selection, addition]...]]``.

    The condition is a stateful environment: an environment with the
    measurements it must be in for the series to apply.
    """

    _toarray = True

    condition: ValueTriple = cbor_field(
        0, "condition", ValueTriple, omitempty=False, default_factory=ValueTriple
    )
    series: CondEndorseSeriesRecords = cbor_field(
        1, "series", CondEndorseSeriesRecords, omitempty=False,
        default_factory=CondEndorseSeriesRecords,
    )

    def register_extensions(self, exts: Map) -> None:
        self.condition.register_extensions(exts)
        self.series.register_extensions(exts)

    def get_extensions(self) -> Optional[Map]:
        return self.series.get_extensions()

    def add_series(self, record: CondEndorseSeriesRecord) -> "CondEndorseSeriesTriple":
        self.series.add(record)
        return self

    def valid(self) -> None:
        try:
            self.condition.valid()
        except ValueError as err:
            raise ValueError(f"stateful environment validation failed: {err}") from err
        if not self.series:
            raise ValueError("conditional series validation failed: no series records")
        try:
            self.series.valid()
        except ValueError as err:
            raise ValueError(f"conditional series validation failed: {err}") from err


class CondEndorseSeriesTriples(Collection[CondEndorseSeriesTriple]):
    item_type = CondEndorseSeriesTriple
    item_label = "conditional endorsement series triple"


# Dependency and membership


def _valid_environments(envs: list, what: str) -> None:
    for i, env in enumerate(envs):
        try:
            env.valid()
        except ValueError as err:
            raise ValueError(f"invalid {what} at index {i}: {err}") from err


@dataclasses.dataclass
class DependencyTriple(Record):
    """``{0: domain, 1: [dependent environment...]}``: the domain relies on the dependents."""

    domain: Environment = cbor_field(
        0, "domain", Environment, omitempty=False, default_factory=Environment
    )
    dependent_domains: list = cbor_field(
        1, "dependent-domains", [Environment], omitempty=False, default_factory=list
    )

    def set_domain(self, env: Environment) -> "DependencyTriple":
        self.domain = _check_environment(env)
        return self

    def add_dependent_domain(self, env: Environment) -> "DependencyTriple":
        self.dependent_domains.append(_check_environment(env))
        return self

    def valid(self) -> None:
        try:
            self.domain.valid()
        except ValueError as err:
            raise ValueError(f"invalid domain: {err}") from err
        if not self.dependent_domains:
            raise ValueError("no dependent domains specified")
        _valid_environments(self.dependent_domains, "dependent domain")


class DependencyTriples(Collection[DependencyTriple]):
    item_type = DependencyTriple
    item_label = "dependency triple"


@dataclasses.dataclass
class MembershipTriple(Record):
    """``{0: domain, 1: [environment...]}``: the environments are members of the domain."""

    domain: Environment = cbor_field(
        0, "domain", Environment, omitempty=False, default_factory=Environment
    )
    environments: list = cbor_field(
        1, "environments", [Environment], omitempty=False, default_factory=list
    )

    def set_domain(self, env: Environment) -> "MembershipTriple":
        self.domain = _check_environment(env)
        return self

    def add_environment(self, env: Environment) -> "MembershipTriple":
        self.environments.append(_check_environment(env))
        return self

    def valid(self) -> None:
        try:
            self.domain.valid()
        except ValueError as err:
            raise ValueError(f"invalid domain: {err}") from err
        if not self.environments:
            raise ValueError("no environments specified")
        _valid_environments(self.environments, "environment")


class MembershipTriples(Collection[MembershipTriple]):
    item_type = MembershipTriple
    item_label = "membership triple"


# CoSWID triples


@dataclasses.dataclass
class CoSWIDEvidenceMap(Record):
    """``{? 0: tag-id, 1: evidence, ? 2: authorized-by}``."""

    tag_id: Optional[TagID] = cbor_field(0, "tagId", TagID)
    evidence: Optional[Evidence] = cbor_field(1, "evidence", Evidence, omitempty=False)
    authorized_by: Optional[CryptoKeys] = cbor_field(2, "authorized-by", CryptoKeys)

    def valid(self) -> None:
        if self.tag_id is not None:
            try:
                self.tag_id.valid()
            except ValueError as err:
                raise ValueError(f"tagId validation failed: {err}") from err
        if self.evidence is None:
            raise ValueError("evidence validation failed: missing evidence")
        try:
            self.evidence.valid()
        except ValueError as err:
            raise ValueError(f"evidence validation failed: {err}") from err
        if self.authorized_by is not None:
            self.authorized_by.valid()


@dataclasses.dataclass
class CoSWIDTriple(Record):
    """``[environment, [coswid-evidence-map...]]``."""

    _toarray = True

    environment: Environment = cbor_field(
        0, "environment", Environment, omitempty=False, default_factory=Environment
    )
    evidence: list = cbor_field(
        1, "coswid-evidence", [CoSWIDEvidenceMap], omitempty=False, default_factory=list
    )

    def set_environment(self, env: Environment) -> "CoSWIDTriple":
        self.environment = _check_environment(env)
        return self

    def add_evidence(self, entry: CoSWIDEvidenceMap) -> "CoSWIDTriple":
        if entry is None:
            raise ValueError("no evidence map to add")
        self.evidence.append(entry)
        return self

    def valid(self) -> None:
        try:
            self.environment.valid()
        except ValueError as err:
            raise ValueError(f"environment validation failed: {err}") from err
        if not self.evidence:
            raise ValueError("no evidence entry in the CoSWIDTriple")
        for i, entry in enumerate(self.evidence):
            try:
                entry.valid()
            except ValueError as err:
                raise ValueError(f"evidence[{i}] validation failed: {err}") from err


class CoSWIDTriples(Collection[CoSWIDTriple]):
    item_type = CoSWIDTriple
    item_label = "CoSWID triple"


# CoMID triples map

# extension point -> (triples field, measurement-level point)
_MEASUREMENT_POINTS = {
    "ReferenceValue": ("reference_values", "Mval"),
    "ReferenceValueFlags": ("reference_values", "Flags"),
    "EndorsedValue": ("endorsed_values", "Mval"),
    "EndorsedValueFlags": ("endorsed_values", "Flags"),
    "CondEndorseSeriesValue": ("cond_endorse_series", "Mval"),
    "CondEndorseSeriesValueFlags": ("cond_endorse_series", "Flags"),
}


def route_measurement_extensions(host: Any, exts: Map, points: dict, own_point: str) -> None:
    """Dispatch extension values to the collections of a triples map.

    Values registered at own_point attach to the host itself; the others are
    grouped per target collection and registered there as ``Mval``/``Flags``.
    """
    per_field: dict[str, Map] = {}
    for point, value in exts.items():
        if point == own_point:
            host.extensions.register(value)
            continue
        target = points.get(point)
        if target is None:
            raise UnexpectedPointError(point)
        field_name, inner_point = target
        per_field.setdefault(field_name, Map()).add(inner_point, value)

    for field_name, inner in per_field.items():
        getattr(host, field_name).register_extensions(inner)
        logger.debug("Registered %s extensions on %s", sorted(inner), field_name)


@dataclasses.dataclass
class Triples(Extensible, Record):
    """triples-map of a CoMID."""

    extension_points = ("Triples",) + tuple(_MEASUREMENT_POINTS)

    reference_values: ValueTriples = cbor_field(
        0, "reference-values", ValueTriples, default_factory=ValueTriples
    )
    endorsed_values: ValueTriples = cbor_field(
        1, "endorsed-values", ValueTriples, default_factory=ValueTriples
    )
    dev_identity_keys: KeyTriples = cbor_field(
        2, "dev-identity-keys", KeyTriples, default_factory=KeyTriples
    )
    attest_verif_keys: KeyTriples = cbor_field(
        3, "attester-verification-keys", KeyTriples, default_factory=KeyTriples
    )
    dependency_triples: DependencyTriples = cbor_field(
        4, "dependency-triples", DependencyTriples, default_factory=DependencyTriples
    )
    membership_triples: MembershipTriples = cbor_field(
        5, "membership-triples", MembershipTriples, default_factory=MembershipTriples
    )
    coswid_triples: CoSWIDTriples = cbor_field(
        6, "coswid-triples", CoSWIDTriples, default_factory=CoSWIDTriples
    )
    cond_endorse_series: CondEndorseSeriesTriples = cbor_field(
        7, "conditional-endorsement-series", CondEndorseSeriesTriples,
        default_factory=CondEndorseSeriesTriples,
    )
    extensions: Extensions = extensions_field()

    def register_extensions(self, exts: Map) -> None:
        route_measurement_extensions(self, exts, _MEASUREMENT_POINTS, "Triples")

    def add_reference_value(self, triple: ValueTriple) -> "Triples":
        self.reference_values.add(triple)
        return self

    def add_endorsed_value(self, triple: ValueTriple) -> "Triples":
        self.endorsed_values.add(triple)
        return self

    def add_dev_identity_key(self, triple: KeyTriple) -> "Triples":
        self.dev_identity_keys.add(triple)
        return self

    def add_attest_verif_key(self, triple: KeyTriple) -> "Triples":
        self.attest_verif_keys.add(triple)
        return self

    def add_dependency_triple(self, triple: DependencyTriple) -> "Triples":
        self.dependency_triples.add(triple)
        return self

    def add_membership_triple(self, triple: MembershipTriple) -> "Triples":
        self.membership_triples.add(triple)
        return self

    def add_coswid_triple(self, triple: CoSWIDTriple) -> "Triples":
        self.coswid_triples.add(triple)
        return self

    def add_cond_endorse_series(self, triple: CondEndorseSeriesTriple) -> "Triples":
        self.cond_endorse_series.add(triple)
        return self

    def _kinds(self) -> tuple:
        return (
            ("reference values", self.reference_values),
            ("endorsed values", self.endorsed_values),
            ("identity triples", self.dev_identity_keys),
            ("attestation verification keys", self.attest_verif_keys),
            ("dependency triples", self.dependency_triples),
            ("membership triples", self.membership_triples),
            ("coswid triples", self.coswid_triples),
            ("conditional series", self.cond_endorse_series),
        )

    def valid(self) -> None:
        kinds = self._kinds()
        if all(not coll for _, coll in kinds) and self.extensions.is_empty():
            raise ValueError("no triples set")
        for what, coll in kinds:
            if not coll:
                continue
            try:
                coll.valid()
            except ValueError as err:
                raise ValueError(f"{what} validation failed: {err}") from err
        self.extensions.valid()
        self.extensions.constrain("valid_triples", self)
