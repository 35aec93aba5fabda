"""
Relational IR: tables, columns and primary keys
Describes the shape of the tables a policy ranges over; rows live in IRContext
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence, Tuple

from dcm.constants import CONTROLLABLE_PREFIX
from dcm.error_handlers.exceptions import PrimaryKeyException, SchemaException


class ColumnType(str, Enum):
    """Declared semantic type of a column"""
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ENUM = "enum"
    FOREIGN_KEY = "foreign_key"
    STRING = "string"


@dataclass(frozen=True)
class IRColumn:
    """
    A column of an IRTable

    Attributes:
        name: Column name; a ``controllable__`` prefix marks a decision column
        column_type: Declared semantic type
        table_name: Owning table, fixed at construction
        references: (table, column) targeted by a FOREIGN_KEY column
        enum_values: Allowed values of an ENUM column
    """
    name: str
    column_type: ColumnType
    table_name: str
    references: Optional[Tuple[str, str]] = None
    enum_values: Tuple[Any, ...] = field(default_factory=tuple)

    @property
    def is_controllable(self) -> bool:
        """True if the solver decides this column's value"""
        return self.name.startswith(CONTROLLABLE_PREFIX)

    @property
    def qualified_name(self) -> str:
        return f"{self.table_name}.{self.name}"

    def __str__(self):
        return self.qualified_name


@dataclass(frozen=True)
class IRPrimaryKey:
    """Ordered columns that jointly identify a row"""
    table_name: str
    columns: Tuple[IRColumn, ...]

    def __post_init__(self):
        if not self.columns:
            raise PrimaryKeyException(f"Primary key of {self.table_name} has no columns")
        for column in self.columns:
            if column.table_name != self.table_name:
                raise PrimaryKeyException(
                    f"Primary key column {column.qualified_name} does not belong to {self.table_name}",
                    details={'table': self.table_name, 'column': column.qualified_name},
                )

    @property
    def primary_key_fields(self) -> Tuple[IRColumn, ...]:
        return self.columns


class IRTable:
    """
    Typed description of a table's columns and optional primary key

    Immutable once constructed. Rows are supplied separately through an
    IRContext so the same description can be reused across compiles.
    """

    def __init__(self, name: str, columns: Sequence[IRColumn],
                 primary_key: Optional[Sequence[str]] = None):
        """
        Initialize table description

        Args:
            name: Table name
            columns: Columns in row order; each must declare ``table_name == name``
            primary_key: Optional names of the columns forming the primary key

        Raises:
            SchemaException: On duplicate or foreign columns
            PrimaryKeyException: If a key column is not a column of this table
        """
        self._name = name
        self._columns = tuple(columns)
        self._index = {}
        for position, column in enumerate(self._columns):
            if column.table_name != name:
                raise SchemaException(
                    f"Column {column.qualified_name} cannot be added to table {name}",
                    details={'table': name, 'column': column.qualified_name},
                )
            if column.name in self._index:
                raise SchemaException(f"Duplicate column {column.name} in table {name}")
            self._index[column.name] = position

        self._primary_key = None
        if primary_key:
            missing = [c for c in primary_key if c not in self._index]
            if missing:
                raise PrimaryKeyException(
                    f"Primary key of {name} names unknown columns: {', '.join(missing)}",
                    details={'table': name, 'columns': missing},
                )
            self._primary_key = IRPrimaryKey(
                name, tuple(self._columns[self._index[c]] for c in primary_key)
            )

    @property
    def name(self) -> str:
        return self._name

    @property
    def columns(self) -> Tuple[IRColumn, ...]:
        return self._columns

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self._columns)

    def get_primary_key(self) -> Optional[IRPrimaryKey]:
        return self._primary_key

    def get_column(self, name: str) -> IRColumn:
        """Return a column by name, raising SchemaException if it does not exist"""
        if name not in self._index:
            raise SchemaException(
                f"Table {self._name} has no column {name}",
                details={'table': self._name, 'column': name},
            )
        return self._columns[self._index[name]]

    def column_index(self, name: str) -> int:
        self.get_column(name)
        return self._index[name]

    def has_column(self, column: IRColumn) -> bool:
        return column.table_name == self._name and column.name in self._index

    @property
    def controllable_columns(self) -> Tuple[IRColumn, ...]:
        return tuple(c for c in self._columns if c.is_controllable)

    def __repr__(self):
        return f"IRTable(name={self._name!r}, columns={list(self.column_names)!r})"


def row_identity(table: IRTable, row: Sequence[Any]) -> Any:
    """
    Identity of a row for result projection.

    A single-column primary key yields the key value, a composite key yields
    the tuple of key values and a table without a key yields the whole row.
    """
    primary_key = table.get_primary_key()
    if primary_key is None:
        return tuple(row)
    fields = primary_key.primary_key_fields
    if len(fields) == 1:
        return row[table.column_index(fields[0].name)]
    return tuple(row[table.column_index(c.name)] for c in fields)


def integer_column(table_name: str, name: str) -> IRColumn:
    return IRColumn(name, ColumnType.INTEGER, table_name)


def string_column(table_name: str, name: str) -> IRColumn:
    return IRColumn(name, ColumnType.STRING, table_name)


def foreign_key_column(table_name: str, name: str, target_table: str, target_column: str) -> IRColumn:
    return IRColumn(name, ColumnType.FOREIGN_KEY, table_name, references=(target_table, target_column))
