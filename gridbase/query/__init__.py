"""
Query Module
Filter/sort configuration parsing and the predicate compiler.
"""

from .config import (
    Direction,
    FilterCondition,
    FilterConfig,
    Logic,
    Operator,
    SortConfig,
    SortSpec,
    parse_filter_config,
    parse_sort_config
)
from .compiler import (
    CompiledFilter,
    CompiledSort,
    QueryPlan,
    compile_filter,
    compile_query,
    compile_sort,
    contains_clause,
    text_contains
)

__all__ = [
    'Direction',
    'FilterCondition',
    'FilterConfig',
    'Logic',
    'Operator',
    'SortConfig',
    'SortSpec',
    'parse_filter_config',
    'parse_sort_config',
    'CompiledFilter',
    'CompiledSort',
    'QueryPlan',
    'compile_filter',
    'compile_query',
    'compile_sort',
    'contains_clause',
    'text_contains'
]
