"""
FlatDB - a small relational engine that keeps each table in a text file
"""

__version__ = "1.0.0"

from .core.database import Database, BatchReport
from .core.repl import REPL
from .core.result import QueryResult
from .core.session import Role, UserSession
from .errors import (
    FlatDBError, ParseError, SchemaError, DataTypeError,
    ConditionError, StorageError, PermissionDenied,
)

__all__ = [
    "Database", "BatchReport", "REPL", "QueryResult", "Role", "UserSession",
    "FlatDBError", "ParseError", "SchemaError", "DataTypeError",
    "ConditionError", "StorageError", "PermissionDenied",
]
