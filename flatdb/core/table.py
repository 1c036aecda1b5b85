"""
Table - Schema, rows and secondary indices for one named table

Rows are lists of strings aligned with the column list; the empty
string is NULL. A row's identity is its position, which shifts on
delete, so every index is rebuilt after rows are removed.
"""

from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from .aggregate import aggregate_rows
from .predicate import Predicate, row_resolver
from .schema import ColumnDef, ColumnLookup
from .types import TypeValidator
from ..indexing.hash_index import SecondaryIndex
from ..parser.parser import JoinType, SelectColumn
from ..errors import DataTypeError, SchemaError
from ..utils import get_logger, split_qualified

logger = get_logger(__name__)

# Padding for the missing side of an outer join
NULL_MARKER = "NULL"


class Table:
    """
    In-memory row store for one table.

    Usage:
        table = Table("users", [ColumnDef.build("id", "INTEGER", primary_key=True),
                                ColumnDef.build("name", "STRING")])
        table.insert_row(["1", "Alice"])
        rows = table.select(["name"], where="id = '1'")
    """

    def __init__(self, name: str, columns: Sequence[ColumnDef]):
        if not columns:
            raise SchemaError(f"Table '{name}' must have at least one column")
        self.name = name
        self.columns: List[ColumnDef] = list(columns)
        self._lookup = ColumnLookup(self.columns)
        self.rows: List[List[str]] = []
        self.indices: Dict[str, SecondaryIndex] = {}

        # Primary key columns are always indexed for the uniqueness check
        for col in self.columns:
            if col.primary_key:
                self.create_index(col.name)

    def __repr__(self) -> str:
        return f"Table({self.name!r}, columns={len(self.columns)}, rows={len(self.rows)})"

    def __len__(self) -> int:
        return len(self.rows)

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    @property
    def column_names(self) -> List[str]:
        return self._lookup.names()

    def find_column(self, name: str) -> Optional[int]:
        """Position of a column (qualifier ignored), or None"""
        return self._lookup.find(split_qualified(name)[1])

    def column_index(self, name: str) -> int:
        pos = self.find_column(name)
        if pos is None:
            raise SchemaError(f"Unknown column '{name}' in table '{self.name}'")
        return pos

    def _locate(self, table_alias: Optional[str], name: str) -> int:
        return self.column_index(name)

    def _positions(self, columns: Sequence[str]) -> List[int]:
        if not columns or list(columns) == ['*']:
            return list(range(len(self.columns)))
        return [self.column_index(name) for name in columns]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_value(self, col: ColumnDef, value: str) -> None:
        if '\n' in value or '\r' in value:
            raise DataTypeError(f"Value for column '{col.name}' contains a line break")
        if value == "" and not col.nullable:
            raise DataTypeError(f"Column '{col.name}' cannot be NULL")
        try:
            TypeValidator.validate(value, col.col_type)
        except DataTypeError as e:
            raise DataTypeError(f"Column '{col.name}': {e}") from e

    def _check_primary_key(self, row: Sequence[str], exclude: Optional[int] = None) -> None:
        for col_name, index in self.indices.items():
            if not self.columns[index.position].primary_key:
                continue
            clashes = index.positions(row[index.position]) - {exclude}
            if clashes:
                raise DataTypeError(
                    f"Duplicate primary key value '{row[index.position]}' for column '{col_name}'"
                )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert_row(self, values: Sequence[str]) -> int:
        """Validate and append a row. Returns its position."""
        row = [str(v) for v in values]
        if len(row) != len(self.columns):
            raise SchemaError(
                f"Table '{self.name}' has {len(self.columns)} columns but {len(row)} values were supplied"
            )

        for col, value in zip(self.columns, row):
            self._check_value(col, value)
        self._check_primary_key(row)

        self.rows.append(row)
        row_pos = len(self.rows) - 1
        for index in self.indices.values():
            index.add(row, row_pos)
        return row_pos

    def update_rows(self, columns: Sequence[str], values: Sequence[str], where: str = "") -> int:
        """
        Assign values to the given columns of every matching row.

        Returns the number of rows changed. Rows already updated stay
        updated if a later row fails the primary key check.
        """
        if len(columns) != len(values):
            raise SchemaError(f"{len(columns)} columns but {len(values)} values in SET")
        positions = self._positions(columns)
        for pos, value in zip(positions, values):
            self._check_value(self.columns[pos], value)

        predicate = Predicate(where)
        updated = 0
        for row_pos, row in enumerate(self.rows):
            if not self._row_matches(predicate, row):
                continue

            new_row = list(row)
            for pos, value in zip(positions, values):
                new_row[pos] = value
            self._check_primary_key(new_row, exclude=row_pos)

            for index in self.indices.values():
                index.remove(row, row_pos)
            self.rows[row_pos] = new_row
            for index in self.indices.values():
                index.add(new_row, row_pos)
            updated += 1

        logger.debug("Updated %d rows in %s", updated, self.name)
        return updated

    def delete_rows(self, where: str = "") -> int:
        """Remove matching rows. Returns the number removed."""
        predicate = Predicate(where)
        deleted = 0
        for row_pos in range(len(self.rows) - 1, -1, -1):
            if self._row_matches(predicate, self.rows[row_pos]):
                del self.rows[row_pos]
                deleted += 1

        if deleted:
            for index in self.indices.values():
                index.rebuild(self.rows)
        logger.debug("Deleted %d rows from %s", deleted, self.name)
        return deleted

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _row_matches(self, predicate: Predicate, row: Sequence[str]) -> bool:
        if not predicate:
            return True
        return predicate.matches(row_resolver(self.find_column, row), bare_words_are_literals=True)

    def filter_rows(self, where: str = "") -> List[List[str]]:
        """Full scan; indices are not consulted"""
        predicate = Predicate(where)
        return [row for row in self.rows if self._row_matches(predicate, row)]

    def sort_rows(self, rows: List[List[str]], order_by: str, desc: bool = False) -> List[List[str]]:
        pos = self.column_index(order_by)
        col_type = self.columns[pos].col_type
        return sorted(rows, key=lambda row: TypeValidator.sort_key(row[pos], col_type),
                      reverse=desc)

    def select(self, columns: Sequence[str] = ('*',), where: str = "", order_by: str = "",
               desc: bool = False, limit: Optional[int] = None) -> List[List[str]]:
        """Filter, sort, limit and project rows"""
        positions = self._positions(columns)
        rows = self.filter_rows(where)
        if order_by:
            rows = self.sort_rows(rows, order_by, desc)
        if limit is not None:
            rows = rows[:limit]
        return [[row[pos] for pos in positions] for row in rows]

    def select_with_aggregates(self, columns: Sequence[SelectColumn], where: str = "",
                               group_by: Sequence[str] = (), having: str = "") -> List[List[str]]:
        """One row per GROUP BY partition (or one row overall), in projection order"""
        rows = self.filter_rows(where)
        return aggregate_rows(columns, rows, self._locate, group_by, having)

    def join(self, other: 'Table', left_col: str, right_col: str,
             kind: JoinType = JoinType.INNER) -> List[List[str]]:
        """Nested-loop equality join. Outer joins pad the missing side with NULL."""
        left_pos = self.column_index(left_col)
        right_pos = other.column_index(right_col)
        left_pad = [NULL_MARKER] * len(self.columns)
        right_pad = [NULL_MARKER] * len(other.columns)

        result = []
        matched_right = set()

        if kind == JoinType.RIGHT:
            for right in other.rows:
                matches = [left for left in self.rows if left[left_pos] == right[right_pos]]
                for left in matches:
                    result.append(left + right)
                if not matches:
                    result.append(left_pad + right)
            return result

        for left in self.rows:
            found = False
            for right_idx, right in enumerate(other.rows):
                if left[left_pos] == right[right_pos]:
                    result.append(left + right)
                    matched_right.add(right_idx)
                    found = True
            if not found and kind in (JoinType.LEFT, JoinType.FULL):
                result.append(left + right_pad)

        if kind == JoinType.FULL:
            for right_idx, right in enumerate(other.rows):
                if right_idx not in matched_right:
                    result.append(left_pad + right)

        return result

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    def create_index(self, column: str) -> SecondaryIndex:
        """(Re)build the index for a column from the current rows"""
        pos = self.column_index(column)
        name = self.columns[pos].name
        index = SecondaryIndex(name, pos)
        index.rebuild(self.rows)
        self.indices[name.lower()] = index
        return index

    def drop_index(self, column: str) -> bool:
        pos = self.find_column(column)
        if pos is not None and self.columns[pos].primary_key:
            raise SchemaError(f"Cannot drop the primary key index on '{self.columns[pos].name}'")
        return self.indices.pop(split_qualified(column)[1].lower(), None) is not None

    def has_index(self, column: str) -> bool:
        return split_qualified(column)[1].lower() in self.indices

    def index_positions(self, column: str, value: str) -> FrozenSet[int]:
        index = self.indices.get(split_qualified(column)[1].lower())
        if index is None:
            raise SchemaError(f"No index on column '{column}' in table '{self.name}'")
        return index.positions(value)

    def index_columns(self) -> List[str]:
        return [index.column_name for index in self.indices.values()]

    def describe(self) -> List[Dict[str, str]]:
        return [col.describe() for col in self.columns]

    def snapshot(self) -> Tuple[Tuple[ColumnDef, ...], Tuple[Tuple[str, ...], ...]]:
        """Schema and rows as immutable tuples, for comparisons"""
        return tuple(self.columns), tuple(tuple(row) for row in self.rows)
