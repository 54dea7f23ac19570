"""Numeric and set expressions used by reference values.

A numeric expression (tag 60010) compares a measured number against an
operand with a relational operator. A set expression (tags 60020 and 60021)
checks membership of a measured value in a set of digests or strings.
"""

import dataclasses
import enum
from typing import Any, Optional, Union

from . import cbor_utils
from .digests import Digests
from .encoding import TEXT, JSONValue, Kind, Record, cbor_field, type_name
from .typechoice import RecordVariant


class Operator(enum.IntEnum):
    EQ = 0
    GT = 1
    GE = 2
    LT = 3
    LE = 4
    NOP = 5
    MEM = 6
    NMEM = 7
    SUB = 8
    SUP = 9
    DIS = 10

    @property
    def json_name(self) -> str:
        return _OPERATOR_NAMES[self]

    @classmethod
    def from_json_name(cls, name: str) -> "Operator":
        for op, op_name in _OPERATOR_NAMES.items():
            if op_name == name:
                return op
        raise ValueError(f"unknown operator {name!r}")


_OPERATOR_NAMES = {
    Operator.EQ: "equal",
    Operator.GT: "greater_than",
    Operator.GE: "greater_or_equal",
    Operator.LT: "less_than",
    Operator.LE: "less_or_equal",
    Operator.NOP: "nop",
    Operator.MEM: "member",
    Operator.NMEM: "non_member",
    Operator.SUB: "subset",
    Operator.SUP: "superset",
    Operator.DIS: "disjoint",
}

NUMERIC_OPERATORS = (Operator.GT, Operator.GE, Operator.LT, Operator.LE)
SET_OPERATORS = (Operator.MEM, Operator.NMEM)


class _OperatorKind(Kind):
    """Operator: CBOR uint, JSON operator name."""

    name = "operator"

    def to_cbor(self, value: Any) -> Any:
        return int(self.coerce(value))

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return self.coerce(data)

    def to_json(self, value: Any) -> JSONValue:
        return self.coerce(value).json_name

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        if not isinstance(data, str):
            raise ValueError(f"unable to unmarshal operator: got {type_name(data)}")
        return Operator.from_json_name(data)

    def coerce(self, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"expected an operator, got {type_name(value)}")
        try:
            return Operator(value)
        except ValueError:
            raise ValueError(f"invalid Operator {value}") from None


class _NumericKind(Kind):
    """Unsigned, signed or floating point number."""

    name = "numeric"

    def coerce(self, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"unsupported NumericType type: {type_name(value)}")
        return value

    def to_cbor(self, value: Any) -> Any:
        return self.coerce(value)

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return self.coerce(data)

    def to_json(self, value: Any) -> JSONValue:
        return self.coerce(value)

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return self.coerce(data)


OPERATOR = _OperatorKind()
NUMERIC = _NumericKind()


@dataclasses.dataclass
class NumericExpression(Record):
    """``[operator, operand]`` with a relational operator."""

    _toarray = True

    operator: Optional[Operator] = cbor_field(0, "numeric-operator", OPERATOR, omitempty=False)
    operand: Union[int, float, None] = cbor_field(1, "numeric-type", NUMERIC, omitempty=False)

    def valid(self) -> None:
        if self.operator not in NUMERIC_OPERATORS:
            raise ValueError(f"invalid Operator {self.operator}")
        NUMERIC.coerce(self.operand)

    def matches(self, measured: Union[int, float]) -> bool:
        """Evaluate the expression against a measured number."""
        if self.operator == Operator.GT:
            return measured > self.operand
        if self.operator == Operator.GE:
            return measured >= self.operand
        if self.operator == Operator.LT:
            return measured < self.operand
        if self.operator == Operator.LE:
            return measured <= self.operand
        raise ValueError(f"invalid Operator {self.operator}")


def _check_set_operator(operator: Optional[Operator]) -> None:
    if operator not in SET_OPERATORS:
        raise ValueError(f"invalid set operator {operator}")


@dataclasses.dataclass
class SetStringExpression(Record):
    """``[operator, [text...]]`` with a membership operator."""

    _toarray = True

    operator: Optional[Operator] = cbor_field(0, "set-operator", OPERATOR, omitempty=False)
    values: Optional[list[str]] = cbor_field(1, "set-string", [TEXT], omitempty=False)

    def valid(self) -> None:
        _check_set_operator(self.operator)
        if not self.values:
            raise ValueError("zero len string array supplied")

    def matches(self, measured: str) -> bool:
        found = measured in self.values
        return found if self.operator == Operator.MEM else not found


@dataclasses.dataclass
class SetDigestExpression(Record):
    """``[operator, digests]`` with a membership operator."""

    _toarray = True

    operator: Optional[Operator] = cbor_field(0, "set-operator", OPERATOR, omitempty=False)
    values: Optional[Digests] = cbor_field(1, "set-digest", Digests, omitempty=False)

    def valid(self) -> None:
        _check_set_operator(self.operator)
        if not self.values:
            raise ValueError("no Digests supplied")
        self.values.valid()

    def matches(self, measured: Digests) -> bool:
        found = any(entry in self.values for entry in measured)
        return found if self.operator == Operator.MEM else not found


def numeric_expression(operator: int, operand: Union[int, float]) -> NumericExpression:
    """Build a validated numeric expression.

    Raises:
        ValueError: If the operator is not relational or the operand not numeric
    """
    expr = NumericExpression(OPERATOR.coerce(operator), operand)
    expr.valid()
    return expr


class NumericExpressionVariant(RecordVariant):
    type_name = "numeric-expression"
    cbor_tag = cbor_utils.TAG_NUMERIC_EXPRESSION
    record_type = NumericExpression


class SetStringExpressionVariant(RecordVariant):
    type_name = "set-string-expression"
    cbor_tag = cbor_utils.TAG_SET_STRING_EXPRESSION
    record_type = SetStringExpression


class SetDigestExpressionVariant(RecordVariant):
    type_name = "set-digest-expression"
    cbor_tag = cbor_utils.TAG_SET_DIGEST_EXPRESSION
    record_type = SetDigestExpression
