"""
Storage Engine - Handles persistence of table data to disk

Features:
- Directory-per-database, file-per-table storage model
- Plain text table files:
    line 1:  name:type:nullable:primaryKey[:refTable:refColumn],...
    line 2+: one row per line, values comma-joined
  A comma inside a value is written as '\\,' and a backslash as '\\\\'.
- Saves are not atomic: table files are rewritten one after another
"""

import os
import re
import shutil
from typing import Dict, Iterable, List

from ..config import TABLE_FILE_EXTENSION
from ..core.schema import ColumnDef
from ..core.table import Table
from ..core.types import TypeValidator
from ..errors import FlatDBError, SchemaError, StorageError, error_context
from ..utils import get_logger

logger = get_logger(__name__)

NAME_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


# ============================================================================
# Line codec
# ============================================================================

def escape_value(value: str) -> str:
    return value.replace('\\', '\\\\').replace(',', '\\,')


def encode_row(row: Iterable[str]) -> str:
    return ','.join(escape_value(value) for value in row)


def decode_row(line: str) -> List[str]:
    """Split a row line on unescaped commas and unescape each value"""
    values = []
    current = []
    chars = iter(line)
    for char in chars:
        if char == '\\':
            current.append(next(chars, '\\'))
        elif char == ',':
            values.append(''.join(current))
            current = []
        else:
            current.append(char)
    values.append(''.join(current))
    return values


def encode_column(col: ColumnDef) -> str:
    fields = [col.name, str(col.col_type),
              '1' if col.nullable else '0',
              '1' if col.primary_key else '0']
    if col.is_foreign_key:
        fields += [col.reference_table or '', col.reference_column or '']
    return ':'.join(fields)


def decode_column(spec: str) -> ColumnDef:
    fields = spec.split(':')
    if len(fields) not in (4, 6):
        raise StorageError(f"Malformed column definition '{spec}'")
    name, type_str, nullable, primary_key = fields[:4]
    reference_table = reference_column = None
    if len(fields) == 6:
        reference_table, reference_column = fields[4], fields[5]
    return ColumnDef(
        name=name,
        col_type=TypeValidator.parse_type(type_str),
        nullable=nullable == '1',
        primary_key=primary_key == '1',
        is_foreign_key=reference_table is not None,
        reference_table=reference_table,
        reference_column=reference_column,
    )


def check_name(name: str, kind: str) -> str:
    """Reject names that cannot be used as a file or directory name"""
    if not NAME_PATTERN.match(name or ''):
        raise SchemaError(f"Invalid {kind} name: '{name}'")
    return name


# ============================================================================
# Storage engine
# ============================================================================

class StorageEngine:
    """
    Main storage engine that manages database directories and table files.
    """

    def __init__(self, root_path: str):
        self.root_path = root_path

        # Ensure data directory exists
        with error_context(f"Cannot create data directory '{root_path}'"):
            os.makedirs(root_path, exist_ok=True)

    def database_path(self, name: str) -> str:
        return os.path.join(self.root_path, check_name(name, "database"))

    def table_path(self, database: str, table_name: str) -> str:
        return os.path.join(self.database_path(database),
                            check_name(table_name, "table") + TABLE_FILE_EXTENSION)

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------

    def list_databases(self) -> List[str]:
        with error_context("Cannot list databases"):
            return sorted(entry for entry in os.listdir(self.root_path)
                          if os.path.isdir(os.path.join(self.root_path, entry))
                          and NAME_PATTERN.match(entry))

    def database_exists(self, name: str) -> bool:
        return os.path.isdir(self.database_path(name))

    def create_database(self, name: str) -> bool:
        """Create the directory for a database. False if it already exists."""
        if self.database_exists(name):
            return False
        with error_context(f"Cannot create database '{name}'"):
            os.makedirs(self.database_path(name))
        logger.info("Created database directory %s", self.database_path(name))
        return True

    def drop_database(self, name: str) -> bool:
        if not self.database_exists(name):
            return False
        with error_context(f"Cannot drop database '{name}'"):
            shutil.rmtree(self.database_path(name))
        logger.info("Removed database directory %s", self.database_path(name))
        return True

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def list_table_files(self, database: str) -> List[str]:
        with error_context(f"Cannot list tables of '{database}'"):
            entries = os.listdir(self.database_path(database))
        return sorted(entry[:-len(TABLE_FILE_EXTENSION)] for entry in entries
                      if entry.endswith(TABLE_FILE_EXTENSION))

    def save_table(self, database: str, table: Table) -> None:
        lines = [','.join(encode_column(col) for col in table.columns)]
        lines.extend(encode_row(row) for row in table.rows)

        with error_context(f"Cannot write table '{table.name}'"):
            with open(self.table_path(database, table.name), 'w', encoding='utf-8',
                      newline='\n') as f:
                f.write('\n'.join(lines) + '\n')

    def save_tables(self, database: str, tables: Iterable[Table]) -> None:
        """Rewrite every table file, one after another"""
        count = 0
        for table in tables:
            self.save_table(database, table)
            count += 1
        logger.debug("Saved %d tables to %s", count, self.database_path(database))

    def load_table(self, database: str, table_name: str) -> Table:
        path = self.table_path(database, table_name)
        with error_context(f"Cannot read table '{table_name}'"):
            with open(path, 'r', encoding='utf-8', newline='') as f:
                content = f.read()

        lines = content.split('\n')
        if lines and lines[-1] == '':
            lines.pop()
        if not lines or not lines[0]:
            raise StorageError(f"Table file '{path}' has no schema line")

        try:
            columns = [decode_column(spec) for spec in lines[0].split(',')]
            table = Table(table_name, columns)
            for line in lines[1:]:
                table.insert_row(decode_row(line))
        except StorageError:
            raise
        except FlatDBError as e:
            raise StorageError(f"Corrupt table file '{path}': {e}") from e

        return table

    def load_tables(self, database: str) -> Dict[str, Table]:
        """Load every table file of a database, keyed by lower-case name"""
        tables = {}
        for table_name in self.list_table_files(database):
            table = self.load_table(database, table_name)
            tables[table_name.lower()] = table
        logger.info("Loaded %d tables from database '%s'", len(tables), database)
        return tables

    def remove_table_file(self, database: str, table_name: str) -> bool:
        path = self.table_path(database, table_name)
        if not os.path.exists(path):
            return False
        with error_context(f"Cannot remove table '{table_name}'"):
            os.remove(path)
        return True
