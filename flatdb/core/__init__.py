"""Core module - Database, Manager, Table, Schema, Types, REPL"""

from .database import Database, BatchReport
from .repl import REPL
from .manager import DatabaseManager
from .table import Table
from .schema import ColumnDef
from .types import DataType, ColumnType, TypeValidator
from .result import QueryResult
from .session import SessionProvider, UserSession, Role

__all__ = [
    'Database', 'BatchReport', 'REPL',
    'DatabaseManager', 'Table', 'ColumnDef',
    'DataType', 'ColumnType', 'TypeValidator',
    'QueryResult', 'SessionProvider', 'UserSession', 'Role',
]
