"""
DatabaseManager - Owns the tables of the selected database

Dispatches parsed queries to Table operations, resolves multi-table
SELECTs (comma lists and JOINs) over concatenated rows, and rewrites
the table files after every mutation that changed something.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .aggregate import aggregate_rows
from .predicate import Predicate, row_resolver
from .result import QueryResult
from .schema import ColumnDef
from .table import NULL_MARKER, Table
from .types import ColumnType, DataType, TypeValidator
from ..config import DEFAULT_DATA_DIR
from ..parser.parser import JoinType, ParsedQuery, QueryType, SelectColumn
from ..storage.engine import StorageEngine, check_name
from ..errors import SchemaError, error_context
from ..utils import get_logger, split_qualified

logger = get_logger(__name__)

# Ordering for computed output: numeric when possible, text otherwise
OUTPUT_SORT_TYPE = ColumnType(DataType.FLOAT)


def _compact(text: str) -> str:
    """Header text without whitespace, for matching AVG( x ) against AVG(x)"""
    return ''.join(text.split()).lower()


class RowLayout:
    """
    Column positions inside a row built by concatenating several tables.

    Lookups walk the tables in FROM/JOIN order; a qualified name picks
    the table by alias (or by name when it has no alias).
    """

    def __init__(self):
        self.parts: List[Tuple[str, Table, int]] = []
        self.width = 0

    def add(self, table: Table, alias: Optional[str] = None) -> int:
        """Append a table; returns its column offset"""
        key = (alias or table.name).lower()
        if any(existing == key for existing, _, _ in self.parts):
            raise SchemaError(f"Table alias '{alias or table.name}' is used more than once")
        offset = self.width
        self.parts.append((key, table, offset))
        self.width += len(table.columns)
        return offset

    def _part(self, table_alias: str) -> Tuple[Table, int]:
        for key, table, offset in self.parts:
            if key == table_alias.lower():
                return table, offset
        raise SchemaError(f"Unknown table alias '{table_alias}'")

    def find(self, ref: str) -> Optional[int]:
        """Position of [alias.]column, or None if no table has it"""
        table_alias, name = split_qualified(ref)
        if table_alias is not None:
            table, offset = self._part(table_alias)
            pos = table.find_column(name)
            return None if pos is None else offset + pos
        for _, table, offset in self.parts:
            pos = table.find_column(name)
            if pos is not None:
                return offset + pos
        return None

    def locate(self, table_alias: Optional[str], name: str) -> int:
        ref = f"{table_alias}.{name}" if table_alias else name
        pos = self.find(ref)
        if pos is None:
            raise SchemaError(f"Unknown column '{ref}'")
        return pos

    def column_type(self, pos: int) -> ColumnType:
        for _, table, offset in self.parts:
            if offset <= pos < offset + len(table.columns):
                return table.columns[pos - offset].col_type
        return OUTPUT_SORT_TYPE

    def headers(self) -> List[str]:
        return [name for _, table, _ in self.parts for name in table.column_names]


class DatabaseManager:
    """
    Holds the selected database's tables in memory.

    Usage:
        manager = DatabaseManager("./data")
        manager.create_database("school")
        manager.execute_non_query(parse_sql("CREATE TABLE t (id INTEGER)"))
        result = manager.execute_select(parse_sql("SELECT * FROM t"))
    """

    def __init__(self, root_path: str = DEFAULT_DATA_DIR, storage: StorageEngine = None):
        self.root_path = root_path
        self.storage = storage or StorageEngine(root_path)
        self.tables: Dict[str, Table] = {}
        self._current: Optional[str] = None

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------

    def current_database(self) -> Optional[str]:
        return self._current

    def list_databases(self) -> List[str]:
        return self.storage.list_databases()

    def create_database(self, name: str) -> bool:
        """Create and select an empty database. False if it already exists."""
        if not self.storage.create_database(name):
            return False
        self._current = name
        self.tables = {}
        logger.info("Created database '%s'", name)
        return True

    def drop_database(self, name: str) -> bool:
        if not self.storage.drop_database(name):
            return False
        if self._current is not None and self._current.lower() == name.lower():
            self._current = None
            self.tables = {}
        logger.info("Dropped database '%s'", name)
        return True

    def use_database(self, name: str) -> bool:
        """Select a database and load all of its tables. False if unknown."""
        if not self.storage.database_exists(name):
            return False
        self.tables = self.storage.load_tables(name)
        self._current = name
        logger.info("Using database '%s'", name)
        return True

    def _require_database(self) -> str:
        if self._current is None:
            raise SchemaError("No database selected")
        return self._current

    def save(self) -> None:
        """Rewrite every table file of the selected database"""
        self.storage.save_tables(self._require_database(), self.tables.values())

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def list_tables(self) -> List[str]:
        return sorted(table.name for table in self.tables.values())

    def find_table(self, name: str) -> Optional[Table]:
        return self.tables.get(name.lower())

    def get_table(self, name: str) -> Table:
        table = self.find_table(name)
        if table is None:
            raise SchemaError(f"Table '{name}' does not exist")
        return table

    def _create_table(self, name: str, columns: Sequence[ColumnDef]) -> Table:
        self._require_database()
        check_name(name, "table")
        if name.lower() in self.tables:
            raise SchemaError(f"Table '{name}' already exists")
        table = Table(name, columns)
        self.tables[name.lower()] = table
        logger.info("Created table '%s' with %d columns", name, len(table.columns))
        return table

    def _drop_table(self, name: str) -> bool:
        database = self._require_database()
        table = self.tables.pop(name.lower(), None)
        if table is None:
            return False
        self.storage.remove_table_file(database, table.name)
        logger.info("Dropped table '%s'", table.name)
        return True

    def create_table(self, name: str, columns: Sequence[ColumnDef]) -> Table:
        table = self._create_table(name, columns)
        self.save()
        return table

    def drop_table(self, name: str) -> bool:
        """Remove a table and its file. False (not an error) if it does not exist."""
        if not self._drop_table(name):
            return False
        self.save()
        return True

    def insert_into(self, name: str, values: Sequence[str]) -> int:
        self._require_database()
        self.get_table(name).insert_row(values)
        self.save()
        return 1

    def create_index(self, table_name: str, column: str) -> None:
        self.get_table(table_name).create_index(column)

    def drop_index(self, table_name: str, column: str) -> bool:
        return self.get_table(table_name).drop_index(column)

    # ------------------------------------------------------------------
    # SELECT
    # ------------------------------------------------------------------

    def execute_select(self, query: ParsedQuery) -> QueryResult:
        """Run a SELECT and return its headers and rows"""
        if query.type != QueryType.SELECT:
            raise SchemaError(f"{query.type.name} is not a SELECT")
        with error_context("Query execution failed"):
            self._require_database()
            if query.is_multi_table:
                result = self._select_joined(query)
            else:
                result = self._select_single(query)
        logger.debug("SELECT returned %d rows", len(result.rows))
        return result

    def _select_single(self, query: ParsedQuery) -> QueryResult:
        table = self.get_table(query.table_name)
        valid_aliases = {table.name.lower()}
        if query.table_alias:
            valid_aliases.add(query.table_alias.lower())
        for col in query.columns:
            if col.table_alias and col.table_alias.lower() not in valid_aliases:
                raise SchemaError(f"Unknown table alias '{col.table_alias}'")

        if query.has_aggregates:
            rows = table.select_with_aggregates(query.columns, query.where,
                                                query.group_by, query.having)
            headers = [col.header for col in query.columns]
            return QueryResult(headers, self._order_output(headers, rows, query))

        names = []
        headers = []
        for col in query.columns:
            if col.is_wildcard:
                names.extend(table.column_names)
                headers.extend(table.column_names)
            else:
                names.append(col.name)
                headers.append(col.header)

        order_by = query.order_by
        if order_by:
            projected = self._projected_alias(query.columns, order_by)
            if projected is not None:
                order_by = projected.name

        rows = table.select(names, query.where, order_by, query.order_desc, query.limit)
        return QueryResult(headers, rows)

    def _select_joined(self, query: ParsedQuery) -> QueryResult:
        layout = RowLayout()

        # Cartesian product of the FROM list
        rows: List[List[str]] = [[]]
        for ref in query.tables:
            table = self.get_table(ref.name)
            layout.add(table, ref.alias)
            rows = [left + right for left in rows for right in table.rows]

        for join in query.joins:
            table = self.get_table(join.table.name)
            left_width = layout.width
            layout.add(table, join.table.alias)
            rows = self._nested_loop_join(rows, left_width, table, layout,
                                          Predicate(join.condition), join.kind)

        where = Predicate(query.where)
        if where:
            rows = [row for row in rows if where.matches(row_resolver(layout.find, row))]

        if query.has_aggregates:
            output = aggregate_rows(query.columns, rows, layout.locate,
                                    query.group_by, query.having)
            headers = [col.header for col in query.columns]
            return QueryResult(headers, self._order_output(headers, output, query))

        if query.order_by:
            projected = self._projected_alias(query.columns, query.order_by)
            if projected is not None:
                pos = layout.locate(projected.table_alias, projected.name)
            else:
                pos = layout.locate(*split_qualified(query.order_by))
            col_type = layout.column_type(pos)
            rows = sorted(rows, key=lambda row: TypeValidator.sort_key(row[pos], col_type),
                          reverse=query.order_desc)
        if query.limit is not None:
            rows = rows[:query.limit]

        positions = []
        headers = []
        for col in query.columns:
            if col.is_wildcard:
                positions.extend(range(layout.width))
                headers.extend(layout.headers())
            else:
                positions.append(layout.locate(col.table_alias, col.name))
                headers.append(col.header)

        return QueryResult(headers, [[row[pos] for pos in positions] for row in rows])

    @staticmethod
    def _nested_loop_join(rows: List[List[str]], left_width: int, table: Table,
                          layout: RowLayout, on: Predicate, kind: JoinType) -> List[List[str]]:
        """Join the rows built so far with one more table"""
        left_pad = [NULL_MARKER] * left_width
        right_pad = [NULL_MARKER] * len(table.columns)

        def matches(row: List[str]) -> bool:
            return on.matches(row_resolver(layout.find, row))

        result = []
        if kind == JoinType.RIGHT:
            for right in table.rows:
                joined = [left + right for left in rows if matches(left + right)]
                result.extend(joined or [left_pad + right])
            return result

        matched_right = set()
        for left in rows:
            found = False
            for right_idx, right in enumerate(table.rows):
                row = left + right
                if matches(row):
                    result.append(row)
                    matched_right.add(right_idx)
                    found = True
            if not found and kind in (JoinType.LEFT, JoinType.FULL):
                result.append(left + right_pad)

        if kind == JoinType.FULL:
            for right_idx, right in enumerate(table.rows):
                if right_idx not in matched_right:
                    result.append(left_pad + right)
        return result

    @staticmethod
    def _projected_alias(columns: Sequence[SelectColumn], ref: str) -> Optional[SelectColumn]:
        for col in columns:
            if col.aggregate is None and col.alias and col.alias.lower() == ref.lower():
                return col
        return None

    @staticmethod
    def _order_output(headers: List[str], rows: List[List[str]],
                      query: ParsedQuery) -> List[List[str]]:
        """ORDER BY / LIMIT over computed rows, matched by header"""
        if query.order_by:
            wanted = {_compact(query.order_by), _compact(split_qualified(query.order_by)[1])}
            pos = next((i for i, h in enumerate(headers) if _compact(h) in wanted), None)
            if pos is None:
                raise SchemaError(f"ORDER BY column '{query.order_by}' is not in the result")
            rows = sorted(rows, key=lambda row: TypeValidator.sort_key(row[pos], OUTPUT_SORT_TYPE),
                          reverse=query.order_desc)
        if query.limit is not None:
            rows = rows[:query.limit]
        return rows

    # ------------------------------------------------------------------
    # Everything else
    # ------------------------------------------------------------------

    def execute_non_query(self, query: ParsedQuery) -> int:
        """
        Run a mutating statement and return the number of affected rows.

        0 means nothing happened (e.g. DROP of a missing table). All
        table files are rewritten when the count is non-zero.
        """
        handlers: Dict[QueryType, Callable[[ParsedQuery], int]] = {
            QueryType.CREATE: self._run_create_table,
            QueryType.DROP: self._run_drop_table,
            QueryType.INSERT: self._run_insert,
            QueryType.UPDATE: self._run_update,
            QueryType.DELETE: self._run_delete,
            QueryType.CREATE_INDEX: self._run_create_index,
            QueryType.DROP_INDEX: self._run_drop_index,
            QueryType.CREATE_DATABASE: self._run_create_database,
            QueryType.DROP_DATABASE: self._run_drop_database,
        }
        handler = handlers.get(query.type)
        if handler is None:
            raise SchemaError(f"{query.type.name} is not a data-changing statement")

        logger.debug("Executing %s on '%s'", query.type.name,
                     query.table_name or query.database_name)
        with error_context("Query execution failed"):
            if query.type not in (QueryType.CREATE_DATABASE, QueryType.DROP_DATABASE):
                self._require_database()
            affected = handler(query)
            if affected > 0 and self._current is not None:
                self.save()
        return affected

    def _run_create_table(self, query: ParsedQuery) -> int:
        self._create_table(query.table_name, query.column_defs)
        return 1

    def _run_drop_table(self, query: ParsedQuery) -> int:
        return 1 if self._drop_table(query.table_name) else 0

    def _run_insert(self, query: ParsedQuery) -> int:
        self.get_table(query.table_name).insert_row(query.values)
        return 1

    def _run_update(self, query: ParsedQuery) -> int:
        return self.get_table(query.table_name).update_rows(
            query.update_columns, query.update_values, query.where)

    def _run_delete(self, query: ParsedQuery) -> int:
        return self.get_table(query.table_name).delete_rows(query.where)

    def _run_create_index(self, query: ParsedQuery) -> int:
        self.create_index(query.table_name, query.index_column)
        return 1

    def _run_drop_index(self, query: ParsedQuery) -> int:
        return 1 if self.drop_index(query.table_name, query.index_column) else 0

    def _run_create_database(self, query: ParsedQuery) -> int:
        return 1 if self.create_database(query.database_name) else 0

    def _run_drop_database(self, query: ParsedQuery) -> int:
        return 1 if self.drop_database(query.database_name) else 0
