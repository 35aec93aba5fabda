"""
IR context: the tables and rows available to one compile
"""
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from dcm.error_handlers.exceptions import PrimaryKeyException, SchemaException
from dcm.models.ir_table import IRTable


class IRContext:
    """
    Read-only registry of tables and their rows

    Rows are stored as tuples in the table's column order. The row order given
    at registration is the generator order used by the compiler.
    """

    def __init__(self):
        self._tables: Dict[str, IRTable] = {}
        self._rows: Dict[str, Tuple[Tuple[Any, ...], ...]] = {}

    def add_table(self, table: IRTable, rows: Iterable[Sequence[Any]] = ()) -> 'IRContext':
        """
        Register a table and its rows.

        Args:
            table: Table description
            rows: Row tuples (or mappings keyed by column name)

        Returns:
            IRContext: self, for chaining

        Raises:
            SchemaException: On duplicate tables or rows of the wrong arity
            PrimaryKeyException: If a single-column key repeats a value
        """
        if table.name in self._tables:
            raise SchemaException(f"Table {table.name} is already registered")

        width = len(table.columns)
        normalized = []
        for position, row in enumerate(rows):
            if isinstance(row, dict):
                unknown = set(row) - set(table.column_names)
                if unknown:
                    raise SchemaException(
                        f"Row {position} of {table.name} has unknown columns: {sorted(unknown)}"
                    )
                row = tuple(row.get(name) for name in table.column_names)
            row = tuple(row)
            if len(row) != width:
                raise SchemaException(
                    f"Row {position} of {table.name} has {len(row)} values, expected {width}",
                    details={'table': table.name, 'row': position},
                )
            normalized.append(row)

        self._check_unique_keys(table, normalized)
        self._tables[table.name] = table
        self._rows[table.name] = tuple(normalized)
        return self

    @staticmethod
    def _check_unique_keys(table: IRTable, rows: List[Tuple[Any, ...]]):
        primary_key = table.get_primary_key()
        if primary_key is None:
            return
        positions = [table.column_index(c.name) for c in primary_key.primary_key_fields]
        seen = set()
        for row in rows:
            key = tuple(row[p] for p in positions)
            if key in seen:
                raise PrimaryKeyException(
                    f"Duplicate primary key {key!r} in table {table.name}",
                    details={'table': table.name, 'key': list(key)},
                )
            seen.add(key)

    def get_table(self, name: str) -> IRTable:
        if name not in self._tables:
            raise SchemaException(f"Unknown table {name}", details={'table': name})
        return self._tables[name]

    def rows(self, name: str) -> Tuple[Tuple[Any, ...], ...]:
        self.get_table(name)
        return self._rows[name]

    def num_rows(self, name: str) -> int:
        return len(self.rows(name))

    @property
    def table_names(self) -> List[str]:
        return list(self._tables)

    def __contains__(self, name):
        return name in self._tables
