"""
Errors - Exception hierarchy for FlatDB

Every failure raised by the engine derives from FlatDBError so callers
can catch engine problems without swallowing unrelated bugs.
"""

from contextlib import contextmanager
from typing import Iterator, Optional


class FlatDBError(Exception):
    """Base class for all engine errors"""


class ParseError(FlatDBError):
    """Malformed or unsupported SQL"""

    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position
        self.reason = message
        if position is not None:
            message = f"{message} (at offset {position})"
        super().__init__(message)


class SchemaError(FlatDBError):
    """Unknown table or column, duplicate table, wrong arity"""


class DataTypeError(FlatDBError):
    """Value does not fit the declared column type or nullability"""


class ConditionError(FlatDBError):
    """WHERE/HAVING clause that cannot be evaluated"""


class StorageError(FlatDBError):
    """Filesystem create/read/write failure"""


class PermissionDenied(FlatDBError):
    """The attached session may not run this statement"""


@contextmanager
def error_context(prefix: str) -> Iterator[None]:
    """
    Re-raise engine errors with added context.

    The error keeps its class so callers can still branch on it;
    OS-level failures are converted to StorageError.
    """
    try:
        yield
    except ParseError as e:
        raise ParseError(f"{prefix}: {e.reason}", e.position) from e
    except FlatDBError as e:
        raise type(e)(f"{prefix}: {e}") from e
    except OSError as e:
        raise StorageError(f"{prefix}: {e}") from e
