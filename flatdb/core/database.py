"""
Database - Main entry point for FlatDB

This is the primary interface for interacting with FlatDB.
It parses SQL, checks the attached session and hands the statement
to the DatabaseManager.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .manager import DatabaseManager
from .result import QueryResult
from .session import SessionProvider
from ..config import DEFAULT_DATA_DIR
from ..parser.parser import ParsedQuery, QueryType, parse_sql
from ..errors import FlatDBError, PermissionDenied, SchemaError, error_context
from ..utils import get_logger, split_statements

logger = get_logger(__name__)


@dataclass
class BatchReport:
    """Outcome of running a script: every statement is attempted"""
    source: str
    results: List[Tuple[str, QueryResult]] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        return f"{self.succeeded} statement(s) succeeded, {self.failed} failed"


class Database:
    """
    FlatDB Database instance.

    Usage:
        db = Database("./data", database="school")
        db.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name VARCHAR(100))")
        db.execute("INSERT INTO users VALUES (1, 'Alice')")
        result = db.execute("SELECT * FROM users")
        for row in result.rows:
            print(row)
    """

    def __init__(self, data_dir: str = DEFAULT_DATA_DIR, database: Optional[str] = None,
                 session: Optional[SessionProvider] = None):
        """
        Initialize a FlatDB database.

        Args:
            data_dir: Directory holding one sub-directory per database
            database: Database to select, created when missing
            session: Optional session that gates every statement
        """
        self.data_dir = data_dir
        self.manager = DatabaseManager(data_dir)
        self.session = session

        if database:
            if not self.manager.use_database(database):
                self.manager.create_database(database)

    @property
    def current_database(self) -> Optional[str]:
        return self.manager.current_database()

    def execute(self, sql: str) -> QueryResult:
        """
        Execute a SQL statement.

        Args:
            sql: SQL statement to execute

        Returns:
            QueryResult containing columns, rows, and metadata

        Raises:
            FlatDBError: If SQL is invalid, not permitted or execution fails
        """
        query = parse_sql(sql)
        self._authorize(query)
        logger.debug("Dispatching %s statement", query.type.name)
        return self._dispatch(query)

    def _authorize(self, query: ParsedQuery) -> None:
        """Apply the session's permissions and database selection"""
        if self.session is None:
            return
        if not self.session.is_logged_in():
            raise PermissionDenied("Not logged in")
        if query.is_mutation and not self.session.can_modify_data():
            raise PermissionDenied(f"Current user may not run {query.type.name} statements")

        wanted = self.session.current_database()
        if wanted and wanted != self.manager.current_database():
            if not self.manager.use_database(wanted):
                raise SchemaError(f"Database '{wanted}' does not exist")

    def _select_in_session(self, name: Optional[str]) -> None:
        select = getattr(self.session, 'select_database', None)
        if select is not None:
            select(name)

    def _dispatch(self, query: ParsedQuery) -> QueryResult:
        if query.type == QueryType.SELECT:
            result = self.manager.execute_select(query)
            result.message = f"{len(result.rows)} row(s) returned"
            return result

        if query.type == QueryType.USE:
            if not self.manager.use_database(query.database_name):
                raise SchemaError(f"Database '{query.database_name}' does not exist")
            self._select_in_session(query.database_name)
            return QueryResult(message=f"Using database '{query.database_name}'")

        if query.type == QueryType.SHOW_TABLES:
            return QueryResult(['table_name'], [[name] for name in self.manager.list_tables()])

        if query.type == QueryType.SHOW_DATABASES:
            return QueryResult(['database'], [[name] for name in self.manager.list_databases()])

        if query.type == QueryType.DESCRIBE:
            info = self.describe(query.table_name)
            columns = list(info[0].keys()) if info else []
            return QueryResult(columns, [list(row.values()) for row in info])

        affected = self.manager.execute_non_query(query)
        if query.type == QueryType.CREATE_DATABASE and affected:
            self._select_in_session(query.database_name)
        elif query.type == QueryType.DROP_DATABASE and affected \
                and self.manager.current_database() is None:
            self._select_in_session(None)
        return QueryResult(affected_rows=affected, message=self._describe_outcome(query, affected))

    @staticmethod
    def _describe_outcome(query: ParsedQuery, affected: int) -> str:
        if query.type == QueryType.CREATE:
            return f"Table '{query.table_name}' created"
        if query.type == QueryType.DROP:
            if affected:
                return f"Table '{query.table_name}' dropped"
            return f"Table '{query.table_name}' does not exist"
        if query.type == QueryType.INSERT:
            return f"{affected} row(s) inserted"
        if query.type == QueryType.UPDATE:
            return f"{affected} row(s) updated"
        if query.type == QueryType.DELETE:
            return f"{affected} row(s) deleted"
        if query.type == QueryType.CREATE_INDEX:
            return f"Index created on {query.table_name}({query.index_column})"
        if query.type == QueryType.DROP_INDEX:
            if affected:
                return f"Index dropped from {query.table_name}({query.index_column})"
            return f"No index on {query.table_name}({query.index_column})"
        if query.type == QueryType.CREATE_DATABASE:
            if affected:
                return f"Database '{query.database_name}' created"
            return f"Database '{query.database_name}' already exists"
        if query.type == QueryType.DROP_DATABASE:
            if affected:
                return f"Database '{query.database_name}' dropped"
            return f"Database '{query.database_name}' does not exist"
        return ""

    def execute_many(self, sql: str) -> List[QueryResult]:
        """
        Execute multiple SQL statements separated by semicolons.

        Stops at the first failing statement.
        """
        return [self.execute(statement) for statement in split_statements(sql)]

    def execute_script(self, path: str, log_path: Optional[str] = None) -> BatchReport:
        """
        Run every statement of a SQL script file.

        Blank lines and lines starting with '--' are skipped, a statement
        ends at a line ending with ';'. Failures are recorded and the
        batch carries on with the next statement. Each statement takes
        one line of the log.
        """
        with error_context(f"Cannot read script '{path}'"):
            with open(path, 'r', encoding='utf-8') as f:
                lines = f.read().splitlines()

        statements = []
        buffer = []
        for line in lines:
            stripped = line.strip()
            if not stripped or stripped.startswith('--'):
                continue
            buffer.append(line)
            if stripped.endswith(';'):
                statements.extend(split_statements('\n'.join(buffer)))
                buffer = []
        if buffer:
            statements.extend(split_statements('\n'.join(buffer)))

        report = BatchReport(source=path)
        log_lines = [self._log_marker(f"Batch started: {path}")]
        for statement in statements:
            entry = ' '.join(statement.split())
            try:
                result = self.execute(statement)
            except FlatDBError as e:
                logger.error("Batch statement failed: %s (%s)", statement, e)
                report.failures.append((statement, str(e)))
                log_lines.append(self._log_marker(f"ERROR: {entry} -> {e}"))
            else:
                report.results.append((statement, result))
                log_lines.append(self._log_marker(f"OK: {entry} -> {result.message}"))
        log_lines.append(self._log_marker(f"Batch finished: {report.summary()}"))

        if log_path:
            with error_context(f"Cannot write batch log '{log_path}'"):
                with open(log_path, 'a', encoding='utf-8') as f:
                    f.write('\n'.join(log_lines) + '\n')

        return report

    @staticmethod
    def _log_marker(text: str) -> str:
        return f"[{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}] {text}"

    def use(self, name: str) -> bool:
        """Select a database; False if it does not exist"""
        return self.manager.use_database(name)

    def tables(self) -> List[str]:
        """List all tables in the selected database."""
        return self.manager.list_tables()

    def databases(self) -> List[str]:
        """List all databases under the data directory."""
        return self.manager.list_databases()

    def describe(self, table_name: str) -> List[Dict[str, str]]:
        """
        Get table schema information.

        Args:
            table_name: Name of table to describe

        Returns:
            One dictionary per column
        """
        return self.manager.get_table(table_name).describe()

    def count(self, table_name: str) -> int:
        """Get row count for a table."""
        return len(self.manager.get_table(table_name))

    def close(self) -> None:
        """Close database (tables are saved after every change)."""
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
