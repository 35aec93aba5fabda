"""
Relational and comprehension IR for the placement compiler
"""
from .ir_table import (
    ColumnType,
    IRColumn,
    IRPrimaryKey,
    IRTable,
    row_identity,
    integer_column,
    string_column,
    foreign_key_column,
)
from .ir_context import IRContext
from .qualifiers import (
    Operator,
    ObjectiveKind,
    Sense,
    Qualifier,
    TableRowGenerator,
    RowPredicate,
    GroupByQualifier,
    CheckHead,
    CapacityHead,
    DistinctHead,
    ObjectiveHead,
    Comprehension,
)
from .visitor import QualifierVisitor, QualifierFormatter, format_comprehension

__all__ = [
    'ColumnType',
    'IRColumn',
    'IRPrimaryKey',
    'IRTable',
    'row_identity',
    'integer_column',
    'string_column',
    'foreign_key_column',
    'IRContext',
    'Operator',
    'ObjectiveKind',
    'Sense',
    'Qualifier',
    'TableRowGenerator',
    'RowPredicate',
    'GroupByQualifier',
    'CheckHead',
    'CapacityHead',
    'DistinctHead',
    'ObjectiveHead',
    'Comprehension',
    'QualifierVisitor',
    'QualifierFormatter',
    'format_comprehension',
]
