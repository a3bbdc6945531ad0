"""
Cell Values Module
Primitive type tagging for the open-ended row payload (column id -> scalar).
"""

import math
from enum import Enum
from typing import Any, Dict, Optional, Union

from gridbase.errors import ValidationError

CellValue = Union[str, int, float, None]
RowData = Dict[str, CellValue]


class ColumnType(str, Enum):
    """Declared column type tag."""
    TEXT = 'TEXT'
    NUMBER = 'NUMBER'

    @classmethod
    def parse(cls, value: Any) -> 'ColumnType':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValidationError(f"Unsupported column type: {value!r}")


class CellKind(str, Enum):
    """Runtime kind of a stored cell value."""
    TEXT = 'text'
    NUMBER = 'number'
    EMPTY = 'empty'


def classify(value: Any) -> Optional[CellKind]:
    """
    Tag a value with its cell kind.

    Returns None when the value is not a storable scalar (bools, containers,
    non-finite floats and every other type).
    """
    if value is None:
        return CellKind.EMPTY
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return CellKind.TEXT
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return CellKind.NUMBER
    return None


def is_empty(value: Any) -> bool:
    """Absent, null and the empty string all count as empty."""
    return value is None or value == ''


def as_number(value: Any) -> Optional[float]:
    """Numeric view of a cell, or None when it has none."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def as_text(value: Any) -> Optional[str]:
    """Text rendering of a cell used by equality, containment and search."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def coerce_for_column(value: Any, column_type: ColumnType) -> CellValue:
    """
    Coerce an incoming cell edit to the column's declared type.

    Raises:
        ValidationError: the value cannot be stored in that column
    """
    kind = classify(value)
    if kind is None:
        raise ValidationError(f"Unsupported cell value: {value!r}")
    if kind is CellKind.EMPTY:
        return None
    if column_type is ColumnType.NUMBER:
        if kind is CellKind.NUMBER:
            return value
        if value == '':
            return None
        number = as_number(value)
        if number is None:
            raise ValidationError(f"Value {value!r} is not a number")
        return int(number) if number.is_integer() else number
    return value if kind is CellKind.TEXT else as_text(value)
