"""
Query Predicate Compiler Module
Compiles filter and sort configurations into plans over row payloads.

A compiled plan is pure: it can be evaluated against in-memory row mappings
or rendered into SQLAlchemy clauses over the JSON payload column. Both
renderings share the same semantics:

- ``contains`` is a case-insensitive substring match on the cell's text
  rendering (global search uses the same policy);
- comparisons are numeric on NUMBER columns and lexicographic on TEXT
  columns, and empty cells never satisfy them;
- absent keys, nulls and empty strings are all "empty";
- sorting places empty cells last in either direction and breaks remaining
  ties by position, then id.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import and_, asc, case, desc, or_, true
from sqlalchemy.sql.elements import ColumnElement

from gridbase.cells import ColumnType, as_number, as_text, is_empty
from gridbase.errors import NotFoundError, ValidationError
from gridbase.query.config import (
    Direction, FilterCondition, Logic, Operator,
    parse_filter_config, parse_sort_config
)

ColumnTypes = Mapping[str, ColumnType]


# ========================================
# Shared value semantics
# ========================================

def text_contains(value: Any, needle: Any) -> bool:
    """Case-insensitive containment on the cell's text rendering."""
    if value is None:
        return False
    return str(as_text(needle)).lower() in str(as_text(value)).lower()


def _escape_like(needle: str) -> str:
    return needle.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def contains_clause(expr: ColumnElement, needle: Any) -> ColumnElement:
    """SQL form of :func:`text_contains` for a text expression."""
    pattern = f"%{_escape_like(str(as_text(needle)))}%"
    return expr.ilike(pattern, escape='\\')


def _text_expr(data_column, column_id: str) -> ColumnElement:
    return data_column[column_id].as_string()


def _number_expr(data_column, column_id: str) -> ColumnElement:
    return data_column[column_id].as_float()


def _empty_clause(data_column, column_id: str) -> ColumnElement:
    expr = _text_expr(data_column, column_id)
    return or_(expr.is_(None), expr == '')


# ========================================
# Operators
# ========================================

class ConditionOperator(ABC):
    """
    One filter operator.

    ``matches`` evaluates a single cell value in memory; ``clause`` renders
    the equivalent SQL predicate over the payload column.
    """

    @abstractmethod
    def matches(self, value: Any, operand: Any, column_type: ColumnType) -> bool:
        pass

    @abstractmethod
    def clause(self, data_column, column_id: str, operand: Any, column_type: ColumnType) -> ColumnElement:
        pass

    def check_operand(self, operand: Any, column_type: ColumnType) -> Any:
        """Normalize the operand at compile time."""
        return operand


class _NumericOperandMixin:
    def check_operand(self, operand: Any, column_type: ColumnType) -> Any:
        if column_type is ColumnType.NUMBER:
            number = as_number(operand)
            if number is None:
                raise ValidationError(f"Value {operand!r} is not a number")
            return number
        return as_text(operand)


class EqualsOperator(_NumericOperandMixin, ConditionOperator):
    def matches(self, value, operand, column_type):
        if column_type is ColumnType.NUMBER:
            number = as_number(value)
            return number is not None and number == operand
        return value is not None and as_text(value) == operand

    def clause(self, data_column, column_id, operand, column_type):
        if column_type is ColumnType.NUMBER:
            return _number_expr(data_column, column_id) == operand
        return _text_expr(data_column, column_id) == operand


class ContainsOperator(ConditionOperator):
    def matches(self, value, operand, column_type):
        return text_contains(value, operand)

    def clause(self, data_column, column_id, operand, column_type):
        return contains_clause(_text_expr(data_column, column_id), operand)


class GreaterThanOperator(_NumericOperandMixin, ConditionOperator):
    def matches(self, value, operand, column_type):
        if column_type is ColumnType.NUMBER:
            number = as_number(value)
            return number is not None and number > operand
        return not is_empty(value) and as_text(value) > operand

    def clause(self, data_column, column_id, operand, column_type):
        if column_type is ColumnType.NUMBER:
            return _number_expr(data_column, column_id) > operand
        expr = _text_expr(data_column, column_id)
        return and_(expr != '', expr > operand)


class LessThanOperator(_NumericOperandMixin, ConditionOperator):
    def matches(self, value, operand, column_type):
        if column_type is ColumnType.NUMBER:
            number = as_number(value)
            return number is not None and number < operand
        return not is_empty(value) and as_text(value) < operand

    def clause(self, data_column, column_id, operand, column_type):
        if column_type is ColumnType.NUMBER:
            return _number_expr(data_column, column_id) < operand
        expr = _text_expr(data_column, column_id)
        return and_(expr != '', expr < operand)


class IsEmptyOperator(ConditionOperator):
    def matches(self, value, operand, column_type):
        return is_empty(value)

    def clause(self, data_column, column_id, operand, column_type):
        return _empty_clause(data_column, column_id)


class IsNotEmptyOperator(ConditionOperator):
    def matches(self, value, operand, column_type):
        return not is_empty(value)

    def clause(self, data_column, column_id, operand, column_type):
        expr = _text_expr(data_column, column_id)
        return and_(expr.isnot(None), expr != '')


OPERATORS: Dict[Operator, ConditionOperator] = {
    Operator.EQUALS: EqualsOperator(),
    Operator.CONTAINS: ContainsOperator(),
    Operator.GREATER_THAN: GreaterThanOperator(),
    Operator.LESS_THAN: LessThanOperator(),
    Operator.IS_EMPTY: IsEmptyOperator(),
    Operator.IS_NOT_EMPTY: IsNotEmptyOperator(),
}


# ========================================
# Compiled forms
# ========================================

@dataclass(frozen=True)
class CompiledCondition:
    column_id: str
    column_type: ColumnType
    operator: ConditionOperator
    operand: Any

    def matches(self, data: Mapping[str, Any]) -> bool:
        return self.operator.matches(data.get(self.column_id), self.operand, self.column_type)

    def clause(self, data_column) -> ColumnElement:
        return self.operator.clause(data_column, self.column_id, self.operand, self.column_type)


@dataclass(frozen=True)
class CompiledFilter:
    conditions: tuple
    logic: Logic = Logic.AND

    @property
    def matches_all(self) -> bool:
        return not self.conditions

    def matches(self, data: Mapping[str, Any]) -> bool:
        if not self.conditions:
            return True
        data = data or {}
        if self.logic is Logic.OR:
            return any(c.matches(data) for c in self.conditions)
        return all(c.matches(data) for c in self.conditions)

    def where(self, data_column) -> ColumnElement:
        """SQL predicate over the payload column."""
        if not self.conditions:
            return true()
        clauses = [c.clause(data_column) for c in self.conditions]
        if self.logic is Logic.OR:
            return or_(*clauses)
        return and_(*clauses)


@dataclass(frozen=True)
class CompiledSortKey:
    column_id: str
    column_type: ColumnType
    direction: Direction

    def value_of(self, data: Mapping[str, Any]) -> Any:
        """Comparable value, or None for an empty cell."""
        value = (data or {}).get(self.column_id)
        if self.column_type is ColumnType.NUMBER:
            return as_number(value)
        return None if is_empty(value) else as_text(value)

    def order_by(self, data_column) -> List[ColumnElement]:
        if self.column_type is ColumnType.NUMBER:
            expr = _number_expr(data_column, self.column_id)
            empty_rank = case((expr.is_(None), 1), else_=0)
        else:
            expr = _text_expr(data_column, self.column_id)
            empty_rank = case((or_(expr.is_(None), expr == ''), 1), else_=0)
        ordered = desc(expr) if self.direction is Direction.DESC else asc(expr)
        return [asc(empty_rank), ordered]


@dataclass(frozen=True)
class CompiledSort:
    keys: tuple = ()

    def sort(
        self,
        rows: Iterable[Any],
        data_of: Callable[[Any], Mapping[str, Any]] = lambda row: row,
        tiebreak: Optional[Callable[[Any], Any]] = None,
    ) -> List[Any]:
        """
        Sort rows in memory.

        Args:
            rows: Rows in any order
            data_of: Returns the cell mapping of a row (defaults to the row itself)
            tiebreak: Key for the final ordering (position, id); when omitted
                the incoming order is kept for ties

        Returns:
            New sorted list
        """
        items = list(rows)
        if tiebreak is not None:
            items.sort(key=tiebreak)
        # Stable sorts applied from the least significant key upwards.
        for key in reversed(self.keys):
            present = [r for r in items if key.value_of(data_of(r)) is not None]
            empty = [r for r in items if key.value_of(data_of(r)) is None]
            present.sort(
                key=lambda r: key.value_of(data_of(r)),
                reverse=key.direction is Direction.DESC,
            )
            items = present + empty
        return items

    def order_by(self, model) -> List[ColumnElement]:
        """SQL ORDER BY list for a row model with ``data``, ``position`` and ``id``."""
        clauses = []
        for key in self.keys:
            clauses.extend(key.order_by(model.data))
        clauses.extend([asc(model.position), asc(model.id)])
        return clauses


@dataclass(frozen=True)
class QueryPlan:
    filter: CompiledFilter
    sort: CompiledSort

    def apply(
        self,
        rows: Iterable[Any],
        data_of: Callable[[Any], Mapping[str, Any]] = lambda row: row,
        tiebreak: Optional[Callable[[Any], Any]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Any]:
        """Filter, sort and page an in-memory row set."""
        matched = [r for r in rows if self.filter.matches(data_of(r))]
        ordered = self.sort.sort(matched, data_of=data_of, tiebreak=tiebreak)
        end = None if limit is None else offset + limit
        return ordered[offset:end]


# ========================================
# Compilation
# ========================================

def _resolve_type(column_id: str, columns: Optional[ColumnTypes]) -> ColumnType:
    if columns is None:
        return ColumnType.TEXT
    if column_id not in columns:
        raise NotFoundError(f"Column not found: {column_id}")
    return columns[column_id]


def compile_condition(condition: FilterCondition, columns: Optional[ColumnTypes] = None) -> CompiledCondition:
    column_type = _resolve_type(condition.column_id, columns)
    operator = OPERATORS[condition.operator]
    operand = condition.value
    if condition.operator.needs_value:
        operand = operator.check_operand(operand, column_type)
    return CompiledCondition(
        column_id=condition.column_id,
        column_type=column_type,
        operator=operator,
        operand=operand,
    )


def compile_filter(config: Any, columns: Optional[ColumnTypes] = None) -> CompiledFilter:
    """
    Compile a filter configuration.

    Args:
        config: FilterConfig or its raw dict/JSON form; None matches all rows
        columns: Column id -> declared type; when None every column is TEXT

    Raises:
        ValidationError: malformed configuration or operand
        NotFoundError: a condition references an unknown column
    """
    config = parse_filter_config(config)
    return CompiledFilter(
        conditions=tuple(compile_condition(c, columns) for c in config.conditions),
        logic=config.logic,
    )


def compile_sort(config: Any, columns: Optional[ColumnTypes] = None) -> CompiledSort:
    """Compile a sort configuration; an empty one orders by position."""
    config = parse_sort_config(config)
    return CompiledSort(keys=tuple(
        CompiledSortKey(
            column_id=key.column_id,
            column_type=_resolve_type(key.column_id, columns),
            direction=key.direction,
        )
        for key in config.keys
    ))


def compile_query(filter_config: Any = None, sort_config: Any = None,
                  columns: Optional[ColumnTypes] = None) -> QueryPlan:
    """Compile both halves of a row query into a plan."""
    return QueryPlan(
        filter=compile_filter(filter_config, columns),
        sort=compile_sort(sort_config, columns),
    )
