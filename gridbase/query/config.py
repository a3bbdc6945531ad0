"""
Filter and Sort Configuration Module
Typed filter/sort configurations and validation of their raw (JSON) shapes.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple, Union

from gridbase.cells import CellKind, classify
from gridbase.errors import ValidationError


class Operator(str, Enum):
    EQUALS = 'equals'
    CONTAINS = 'contains'
    GREATER_THAN = 'greaterThan'
    LESS_THAN = 'lessThan'
    IS_EMPTY = 'isEmpty'
    IS_NOT_EMPTY = 'isNotEmpty'

    @property
    def needs_value(self) -> bool:
        return self not in (Operator.IS_EMPTY, Operator.IS_NOT_EMPTY)


class Logic(str, Enum):
    AND = 'AND'
    OR = 'OR'


class Direction(str, Enum):
    ASC = 'asc'
    DESC = 'desc'


@dataclass(frozen=True)
class FilterCondition:
    column_id: str
    operator: Operator
    value: Union[str, int, float, None] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'columnId': self.column_id, 'operator': self.operator.value}
        if self.value is not None:
            data['value'] = self.value
        return data


@dataclass(frozen=True)
class FilterConfig:
    conditions: Tuple[FilterCondition, ...] = ()
    logic: Logic = Logic.AND

    def to_dict(self) -> Dict[str, Any]:
        return {
            'conditions': [c.to_dict() for c in self.conditions],
            'logic': self.logic.value,
        }


@dataclass(frozen=True)
class SortSpec:
    column_id: str
    direction: Direction = Direction.ASC

    def to_dict(self) -> Dict[str, Any]:
        return {'columnId': self.column_id, 'direction': self.direction.value}


@dataclass(frozen=True)
class SortConfig:
    keys: Tuple[SortSpec, ...] = field(default_factory=tuple)

    def to_list(self) -> List[Dict[str, Any]]:
        return [k.to_dict() for k in self.keys]


def _load_json(raw: Any, what: str) -> Any:
    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise ValidationError(f"Invalid {what} JSON: {e}")
    return raw


def _parse_enum(enum_cls, value: Any, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ', '.join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {what} {value!r}; expected one of: {allowed}")


def _parse_column_id(raw: Dict[str, Any], where: str) -> str:
    column_id = raw.get('columnId')
    if not isinstance(column_id, str) or not column_id:
        raise ValidationError(f"{where}: columnId must be a non-empty string")
    return column_id


def parse_filter_condition(raw: Any, index: int = 0) -> FilterCondition:
    """Validate one raw condition ``{"columnId", "operator", "value"?}``."""
    where = f"Filter condition {index}"
    if isinstance(raw, FilterCondition):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError(f"{where} must be an object")

    column_id = _parse_column_id(raw, where)
    operator = _parse_enum(Operator, raw.get('operator'), 'filter operator')

    value = raw.get('value')
    if value is not None and classify(value) not in (CellKind.TEXT, CellKind.NUMBER):
        raise ValidationError(f"{where}: value must be a string or a number")
    if operator.needs_value and value is None:
        raise ValidationError(f"{where}: operator '{operator.value}' requires a value")
    if not operator.needs_value:
        value = None

    return FilterCondition(column_id=column_id, operator=operator, value=value)


def parse_filter_config(raw: Any) -> FilterConfig:
    """
    Validate a raw filter configuration.

    Accepts None (match everything), a dict shaped like
    ``{"conditions": [...], "logic": "AND" | "OR"}``, its JSON text, or an
    already parsed FilterConfig.

    Raises:
        ValidationError: the shape or any condition is malformed
    """
    if isinstance(raw, FilterConfig):
        return raw
    raw = _load_json(raw, 'filter')
    if raw is None:
        return FilterConfig()
    if not isinstance(raw, dict):
        raise ValidationError("Filter must be an object with 'conditions' and 'logic'")

    conditions = raw.get('conditions', [])
    if conditions is None:
        conditions = []
    if not isinstance(conditions, list):
        raise ValidationError("Filter 'conditions' must be a list")

    logic = raw.get('logic') or Logic.AND.value
    return FilterConfig(
        conditions=tuple(parse_filter_condition(c, i) for i, c in enumerate(conditions)),
        logic=_parse_enum(Logic, logic, 'filter logic'),
    )


def parse_sort_config(raw: Any) -> SortConfig:
    """
    Validate a raw sort configuration: a list of ``{"columnId", "direction"}``.

    Raises:
        ValidationError: the shape or any key is malformed
    """
    if isinstance(raw, SortConfig):
        return raw
    raw = _load_json(raw, 'sort')
    if raw is None:
        return SortConfig()
    if not isinstance(raw, list):
        raise ValidationError("Sort must be a list of {columnId, direction}")

    keys = []
    for index, item in enumerate(raw):
        where = f"Sort key {index}"
        if not isinstance(item, dict):
            raise ValidationError(f"{where} must be an object")
        keys.append(SortSpec(
            column_id=_parse_column_id(item, where),
            direction=_parse_enum(Direction, item.get('direction', 'asc'), 'sort direction'),
        ))
    return SortConfig(keys=tuple(keys))
