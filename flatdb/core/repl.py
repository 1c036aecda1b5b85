"""
REPL - Interactive SQL shell for FlatDB

Provides a command-line interface for executing SQL statements
and managing databases.
"""

import argparse
import sys
from collections import deque
from typing import List, Optional, TextIO

from .database import Database
from .result import QueryResult
from .session import Role, UserSession
from ..config import Settings
from ..errors import FlatDBError
from ..utils import configure_logging


class REPL:
    """
    Interactive SQL REPL (Read-Eval-Print Loop) for FlatDB.

    Features:
    - Multi-line SQL input (statements ending with ;)
    - Bounded command history
    - Special commands (.tables, .schema, .use, .login, .quit, etc.)
    - Pretty-printed results
    """

    BANNER = """
FlatDB - a small SQL engine over flat text files

Type .help for commands, or enter SQL statements.
Statements must end with a semicolon (;).
"""

    HELP = """
Special Commands:
  .help                   Show this help message
  .tables                 List tables in the current database
  .databases              List databases
  .use <database>         Select a database
  .schema <table>         Show schema for a table
  .count <table>          Show row count for a table
  .indexes <table>        Show indexed columns of a table
  .history                Show recent statements
  .login <user> [role]    Start a session (role: admin, editor, viewer)
  .logout                 End the session
  .quit / .exit           Exit the REPL

SQL Commands:
  CREATE DATABASE / DROP DATABASE / USE / SHOW DATABASES
  CREATE TABLE / DROP TABLE / SHOW TABLES / DESCRIBE
  INSERT INTO / SELECT / UPDATE / DELETE FROM
  CREATE INDEX / DROP INDEX

Example:
  CREATE DATABASE school;
  CREATE TABLE students (id INTEGER PRIMARY KEY, name VARCHAR(50) NOT NULL);
  INSERT INTO students VALUES (1, 'Alice');
  SELECT name FROM students WHERE id = '1';
"""

    def __init__(self, data_dir: str = "./data", database: Optional[str] = None,
                 history_size: int = 100, out: TextIO = None):
        """Initialize REPL with database connection."""
        self.db = Database(data_dir, database=database)
        self.out = out or sys.stdout
        self.history = deque(maxlen=history_size)
        self.running = False
        self.buffer: List[str] = []

    def _print(self, text: str = "") -> None:
        print(text, file=self.out)

    def run(self) -> None:
        """Start the REPL loop."""
        self.running = True
        self._print(self.BANNER)

        while self.running:
            try:
                self._process_input()
            except KeyboardInterrupt:
                self._print("\n(Use .quit to exit)")
            except EOFError:
                self._print()
                self._quit()

    def _get_prompt(self) -> str:
        """Get the appropriate prompt."""
        if self.buffer:
            return "   ...> "
        database = self.db.current_database
        return f"flatdb:{database}> " if database else "flatdb> "

    def _process_input(self) -> None:
        """Read and process user input."""
        self.feed(input(self._get_prompt()))

    def feed(self, line: str) -> None:
        """Process one line of input"""
        line = line.strip()

        # Empty line
        if not line:
            return

        # Special commands (only when not in multi-line mode)
        if not self.buffer and line.startswith('.'):
            self._handle_command(line)
            return

        # Add to buffer
        self.buffer.append(line)

        # Check if statement is complete
        full_statement = ' '.join(self.buffer)
        if full_statement.rstrip().endswith(';'):
            self.buffer = []
            self.history.append(full_statement)
            self._execute_statement(full_statement)

    def _handle_command(self, cmd: str) -> None:
        """Handle special dot commands."""
        parts = cmd.split(None, 1)
        command = parts[0].lower()
        args = parts[1].strip() if len(parts) > 1 else None

        if command in ('.quit', '.exit', '.q'):
            self._quit()
        elif command == '.help':
            self._print(self.HELP)
        elif command == '.tables':
            self._show_tables()
        elif command == '.databases':
            self._show_databases()
        elif command == '.use':
            self._use(args)
        elif command == '.schema':
            self._show_schema(args)
        elif command == '.count':
            self._show_count(args)
        elif command == '.indexes':
            self._show_indexes(args)
        elif command == '.history':
            self._show_history()
        elif command == '.login':
            self._login(args)
        elif command == '.logout':
            self._logout()
        else:
            self._print(f"Unknown command: {command}")
            self._print("Type .help for available commands.")

    def _quit(self) -> None:
        """Exit the REPL."""
        self._print("Goodbye!")
        self.running = False
        self.db.close()

    def _show_tables(self) -> None:
        """List all tables."""
        tables = self.db.tables()
        if tables:
            self._print("\nTables:")
            for table in tables:
                self._print(f"  {table} ({self.db.count(table)} rows)")
            self._print()
        elif self.db.current_database is None:
            self._print("No database selected. Use .use <database>.")
        else:
            self._print("No tables found.")

    def _show_databases(self) -> None:
        databases = self.db.databases()
        if not databases:
            self._print("No databases found.")
            return
        for name in databases:
            marker = '*' if name == self.db.current_database else ' '
            self._print(f" {marker} {name}")

    def _use(self, name: Optional[str]) -> None:
        if not name:
            self._print("Usage: .use <database>")
            return
        self._execute_statement(f"USE {name};")

    def _show_schema(self, table_name: Optional[str]) -> None:
        """Show schema for a table."""
        if not table_name:
            self._print("Usage: .schema <table_name>")
            return

        try:
            columns = self.db.describe(table_name)
        except FlatDBError as e:
            self._print(f"Error: {e}")
            return

        self._print(f"\nTable: {table_name}")
        self._print("-" * 60)
        for col in columns:
            flags = []
            if col['key'] == 'PRI':
                flags.append('PRIMARY KEY')
            elif col['nullable'] == 'NO':
                flags.append('NOT NULL')
            if col['references']:
                flags.append(f"REFERENCES {col['references']}")
            self._print(f"  {col['column_name']:20} {col['type']:15} {' '.join(flags)}")
        self._print()

    def _show_count(self, table_name: Optional[str]) -> None:
        """Show row count for a table."""
        if not table_name:
            self._print("Usage: .count <table_name>")
            return

        try:
            self._print(f"{table_name}: {self.db.count(table_name)} rows")
        except FlatDBError as e:
            self._print(f"Error: {e}")

    def _show_indexes(self, table_name: Optional[str]) -> None:
        """Show indexes for a table."""
        if not table_name:
            self._print("Usage: .indexes <table_name>")
            return

        table = self.db.manager.find_table(table_name)
        if table is None:
            self._print(f"Error: Table '{table_name}' does not exist")
            return
        columns = table.index_columns()
        if columns:
            self._print(f"\nIndexes on {table.name}:")
            for name in columns:
                self._print(f"  INDEX on {name} ({len(table.indices[name.lower()])} values)")
            self._print()
        else:
            self._print(f"No indexes on {table.name}")

    def _show_history(self) -> None:
        for number, statement in enumerate(self.history, 1):
            self._print(f"{number:4}  {statement}")

    def _login(self, args: Optional[str]) -> None:
        if not args:
            self._print("Usage: .login <user> [admin|editor|viewer]")
            return
        parts = args.split()
        try:
            role = Role.parse(parts[1]) if len(parts) > 1 else Role.ADMIN
            session = UserSession.login(parts[0], role, self.db.current_database)
        except ValueError as e:
            self._print(f"Error: {e}")
            return
        self.db.session = session
        self._print(f"Logged in as {session.username} ({session.role.value})")

    def _logout(self) -> None:
        if self.db.session is None:
            self._print("Not logged in.")
            return
        logout = getattr(self.db.session, 'logout', None)
        if logout is not None:
            logout()
        self._print("Logged out. Use .login <user> [role] to continue.")

    def _execute_statement(self, sql: str) -> None:
        """Execute a SQL statement and display results."""
        try:
            result = self.db.execute(sql)
        except FlatDBError as e:
            self._print(f"Error: {e}")
            return

        if result.columns:
            self._print_results(result)
        elif result.message:
            self._print(result.message)

    def _print_results(self, result: QueryResult) -> None:
        """Pretty-print query results as a table."""
        if not result.rows:
            self._print("(0 rows)")
            return

        self._print()
        self._print(format_table(result))
        self._print(f"\n({len(result.rows)} row(s))")


def format_table(result: QueryResult, max_width: int = 40) -> str:
    """Render rows as an aligned text table"""
    columns = result.columns
    widths = [len(col) for col in columns]

    for row in result.rows:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], len(val))

    # Limit column width for readability
    widths = [min(w, max_width) for w in widths]

    header = " | ".join(col.ljust(w)[:w] for col, w in zip(columns, widths))
    separator = "-+-".join("-" * w for w in widths)
    lines = [header, separator]
    for row in result.rows:
        lines.append(" | ".join(val.ljust(w)[:w] for val, w in zip(row, widths)))
    return '\n'.join(lines)


def main(argv: Optional[List[str]] = None):
    """Entry point for the REPL."""
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(
        description="FlatDB - a small SQL engine over flat text files"
    )
    parser.add_argument(
        '-d', '--data-dir',
        default=settings.data_dir,
        help=f'Directory holding the databases (default: {settings.data_dir})'
    )
    parser.add_argument(
        '-D', '--database',
        default=settings.database,
        help='Database to select on startup (created if missing)'
    )
    parser.add_argument(
        '-e', '--execute',
        help='Execute SQL statement and exit'
    )
    parser.add_argument(
        '-f', '--file',
        help='Execute SQL script and exit'
    )
    parser.add_argument(
        '--batch-log',
        help='Append a timestamped log of the script run to this file'
    )
    parser.add_argument(
        '--log-level',
        default=settings.log_level,
        help=f'Logging level (default: {settings.log_level})'
    )

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    # Execute single statement
    if args.execute:
        db = Database(args.data_dir, database=args.database)
        try:
            result = db.execute(args.execute)
        except FlatDBError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        if result.columns:
            print(format_table(result))
        if result.message:
            print(result.message)
        return

    # Execute from file
    if args.file:
        db = Database(args.data_dir, database=args.database)
        try:
            report = db.execute_script(args.file, args.batch_log)
        except FlatDBError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        for statement, error in report.failures:
            print(f"Error in '{statement}': {error}", file=sys.stderr)
        print(report.summary())
        if not report.ok:
            sys.exit(1)
        return

    # Start interactive REPL
    repl = REPL(args.data_dir, database=args.database, history_size=settings.history_size)
    repl.run()


if __name__ == '__main__':
    main()
