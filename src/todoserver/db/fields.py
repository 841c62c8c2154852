"""
=============================================================================
FIELD DECODING
=============================================================================

Drivers hand back column values in whatever Python type they like: MySQL
BOOLEAN arrives as 0/1, SQLite may give us text for a number, DECIMAL comes
back as Decimal, NULL is None. The todo API only ever wants three things out
of a column: a bool, an int, or a str.

Field is a small tagged union over those raw values:

    raw value ──Field.of()──► Field(kind, value) ──to_bool()──► bool
                                                 ──to_int()───► int
                                                 ──to_str()───► str

=============================================================================
STRICTNESS CONTRACT
=============================================================================

    to_bool   lenient   unknown kinds read as False, never raises
    to_str    lenient   unknown kinds read as "", never raises
    to_int    STRICT    anything that is not an integer raises FieldTypeError

Identifiers flow through to_int. A row id that silently became 0 would make
an update hit the wrong record, so numeric coercion fails loudly instead.
Flags and display text degrade to a harmless default.

=============================================================================
"""

import datetime
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from ..errors import FieldTypeError


INT64_MAX = 2 ** 63 - 1

# Decimal integer literal, optional sign, nothing else (no whitespace, no "1_000")
_INTEGER_LITERAL = re.compile(r"^[+-]?[0-9]+$")


class FieldKind(Enum):
    """Runtime kind of a column value."""
    NULL = "null"
    INT64 = "int64"
    UINT64 = "uint64"
    STRING = "string"
    FLOAT = "float"
    DOUBLE = "double"
    BLOB = "blob"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    OTHER = "other"


INTEGER_KINDS = frozenset({FieldKind.INT64, FieldKind.UINT64})
FLOATING_KINDS = frozenset({FieldKind.FLOAT, FieldKind.DOUBLE})


@dataclass(frozen=True)
class Field:
    """
    A column value tagged with its kind.

    Build one with Field.of(value); the constructor is there for tests that
    want a specific kind (for example a FLOAT rather than a DOUBLE).
    """

    kind: FieldKind
    value: Any = None

    @classmethod
    def of(cls, value: Any) -> "Field":
        """
        Classify a raw driver value.

        Order matters: bool is a subclass of int and datetime is a subclass
        of date, so the more specific checks come first.
        """
        if value is None:
            return cls(FieldKind.NULL)
        if isinstance(value, bool):
            return cls(FieldKind.INT64, int(value))
        if isinstance(value, int):
            kind = FieldKind.UINT64 if value > INT64_MAX else FieldKind.INT64
            return cls(kind, value)
        if isinstance(value, float):
            return cls(FieldKind.DOUBLE, value)
        if isinstance(value, Decimal):
            # DECIMAL travels as text on the MySQL wire
            return cls(FieldKind.STRING, str(value))
        if isinstance(value, str):
            return cls(FieldKind.STRING, value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(FieldKind.BLOB, bytes(value))
        if isinstance(value, datetime.datetime):
            return cls(FieldKind.DATETIME, value)
        if isinstance(value, datetime.date):
            return cls(FieldKind.DATE, value)
        if isinstance(value, (datetime.time, datetime.timedelta)):
            return cls(FieldKind.TIME, value)
        return cls(FieldKind.OTHER, value)

    def to_bool(self) -> bool:
        if self.kind in INTEGER_KINDS:
            return self.value != 0
        if self.kind is FieldKind.STRING:
            return self.value in ("1", "true")
        return False

    def to_int(self) -> int:
        if self.kind in INTEGER_KINDS:
            return int(self.value)
        if self.kind is FieldKind.STRING:
            if not _INTEGER_LITERAL.match(self.value):
                raise FieldTypeError(f"field is not an integer literal: {self.value!r}")
            return int(self.value)
        raise FieldTypeError("field has incompatible type for numeric coercion")

    def to_str(self) -> str:
        if self.kind is FieldKind.STRING:
            return self.value
        if self.kind in INTEGER_KINDS or self.kind in FLOATING_KINDS:
            return str(self.value)
        return ""


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
# Row handling code reads better as to_int(row.id) than Field.of(row.id).to_int()

def to_bool(value: Any) -> bool:
    return Field.of(value).to_bool()


def to_int(value: Any) -> int:
    return Field.of(value).to_int()


def to_str(value: Any) -> str:
    return Field.of(value).to_str()
