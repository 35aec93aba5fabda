"""
Build IR tables from SQLAlchemy table metadata

The external data layer keeps cluster state in relational tables; these
helpers describe those tables as IRTables and read their rows into an
IRContext so a compile sees one consistent snapshot.
"""
import logging
from typing import Iterable

from sqlalchemy import Boolean, Enum, Integer, String, Text, Table, select

from dcm.error_handlers.exceptions import SchemaException
from dcm.models.ir_context import IRContext
from dcm.models.ir_table import ColumnType, IRColumn, IRTable

logger = logging.getLogger(__name__)


def _ir_column(table_name, column) -> IRColumn:
    """Map one SQLAlchemy column to an IRColumn."""
    foreign_keys = list(column.foreign_keys)
    if foreign_keys:
        # target_fullname is "table.column" (optionally schema-qualified)
        target_table, target_column = foreign_keys[0].target_fullname.rsplit('.', 1)
        target_table = target_table.rsplit('.', 1)[-1]
        return IRColumn(column.name, ColumnType.FOREIGN_KEY, table_name,
                        references=(target_table, target_column))

    sql_type = column.type
    # Enum subclasses String, so it has to be checked first
    if isinstance(sql_type, Enum):
        return IRColumn(column.name, ColumnType.ENUM, table_name,
                        enum_values=tuple(sql_type.enums))
    if isinstance(sql_type, Boolean):
        return IRColumn(column.name, ColumnType.BOOLEAN, table_name)
    if isinstance(sql_type, Integer):
        return IRColumn(column.name, ColumnType.INTEGER, table_name)
    if isinstance(sql_type, (String, Text)):
        return IRColumn(column.name, ColumnType.STRING, table_name)

    raise SchemaException(
        f"Column {table_name}.{column.name} has unsupported type {sql_type!r}; "
        f"only integer, boolean, enum, string and foreign key columns are supported",
        details={'table': table_name, 'column': column.name},
    )


def ir_table_from_sqlalchemy(table: Table) -> IRTable:
    """
    Describe a SQLAlchemy table as an IRTable.

    Args:
        table: SQLAlchemy Core table (or ``Model.__table__``)

    Returns:
        IRTable: Columns in declaration order, primary key preserved

    Raises:
        SchemaException: If a column type has no IR counterpart
    """
    columns = [_ir_column(table.name, c) for c in table.columns]
    primary_key = [c.name for c in table.primary_key.columns] or None
    return IRTable(table.name, columns, primary_key=primary_key)


def load_ir_context(connection, tables: Iterable[Table]) -> IRContext:
    """
    Read the rows of ``tables`` into a fresh IRContext.

    Rows are ordered by primary key so generator order, and with it symmetry
    breaking, is stable between compiles of the same state.

    Args:
        connection: SQLAlchemy Connection or Session
        tables: SQLAlchemy tables to load

    Returns:
        IRContext: One IRTable per input table with its rows
    """
    context = IRContext()
    for table in tables:
        ir_table = ir_table_from_sqlalchemy(table)
        stmt = select(table)
        if len(table.primary_key.columns):
            stmt = stmt.order_by(*table.primary_key.columns)
        rows = [tuple(r) for r in connection.execute(stmt).all()]
        logger.debug(f"Loaded {len(rows)} rows from {table.name}")
        context.add_table(ir_table, rows)
    return context
