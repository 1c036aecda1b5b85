"""
Data Types Module - Defines supported column data types for FlatDB

Supports: INTEGER, FLOAT, STRING, VARCHAR(n), TEXT, BOOLEAN, DATE, TIMESTAMP

Row values are always stored as text. Types are checked when a value is
written (insert/update) and consulted again only for ordering.
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Optional, Tuple
from datetime import datetime
import re

from ..errors import DataTypeError, SchemaError


class DataType(Enum):
    """Supported data types in FlatDB"""
    INTEGER = auto()
    FLOAT = auto()
    STRING = auto()
    VARCHAR = auto()
    TEXT = auto()
    BOOLEAN = auto()
    DATE = auto()
    TIMESTAMP = auto()


NUMERIC_TYPES = (DataType.INTEGER, DataType.FLOAT)

BOOLEAN_LITERALS = ('TRUE', 'FALSE', '1', '0', 'YES', 'NO')

TIMESTAMP_FORMATS = ('%Y-%m-%d %H:%M:%S', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%d')


@dataclass(frozen=True)
class ColumnType:
    """Column type with optional size constraint (for VARCHAR)"""
    dtype: DataType
    size: Optional[int] = None  # For VARCHAR(n)

    def __str__(self) -> str:
        if self.dtype == DataType.VARCHAR and self.size:
            return f"VARCHAR({self.size})"
        return self.dtype.name

    @property
    def is_numeric(self) -> bool:
        return self.dtype in NUMERIC_TYPES


class TypeValidator:
    """Validates text values against column types"""

    TYPE_MAP = {
        'INTEGER': DataType.INTEGER,
        'INT': DataType.INTEGER,
        'FLOAT': DataType.FLOAT,
        'REAL': DataType.FLOAT,
        'DOUBLE': DataType.FLOAT,
        'STRING': DataType.STRING,
        'VARCHAR': DataType.VARCHAR,
        'TEXT': DataType.TEXT,
        'BOOLEAN': DataType.BOOLEAN,
        'BOOL': DataType.BOOLEAN,
        'DATE': DataType.DATE,
        'TIMESTAMP': DataType.TIMESTAMP,
        'DATETIME': DataType.TIMESTAMP,
    }

    @staticmethod
    def parse_type(type_str: str) -> ColumnType:
        """Parse SQL type string into ColumnType"""
        type_str = type_str.upper().strip()

        # Check for VARCHAR with size
        varchar_match = re.match(r'VARCHAR\s*\(\s*(\d+)\s*\)$', type_str)
        if varchar_match:
            return ColumnType(DataType.VARCHAR, int(varchar_match.group(1)))

        if type_str in TypeValidator.TYPE_MAP:
            return ColumnType(TypeValidator.TYPE_MAP[type_str])

        raise SchemaError(f"Unknown data type: {type_str}")

    @staticmethod
    def validate(value: str, col_type: ColumnType) -> None:
        """Raise DataTypeError unless value fits col_type. Empty means NULL."""
        if value == "":
            return

        dtype = col_type.dtype

        if dtype == DataType.INTEGER:
            try:
                int(value)
            except ValueError:
                raise DataTypeError(f"'{value}' is not a valid INTEGER")

        elif dtype == DataType.FLOAT:
            try:
                float(value)
            except ValueError:
                raise DataTypeError(f"'{value}' is not a valid FLOAT")

        elif dtype == DataType.VARCHAR:
            if col_type.size and len(value) > col_type.size:
                raise DataTypeError(f"String exceeds VARCHAR({col_type.size}) limit")

        elif dtype == DataType.BOOLEAN:
            if value.upper() not in BOOLEAN_LITERALS:
                raise DataTypeError(f"'{value}' is not a valid BOOLEAN")

        elif dtype == DataType.DATE:
            try:
                datetime.strptime(value, '%Y-%m-%d')
            except ValueError:
                raise DataTypeError(f"'{value}' is not a valid DATE (expected YYYY-MM-DD)")

        elif dtype == DataType.TIMESTAMP:
            for fmt in TIMESTAMP_FORMATS:
                try:
                    datetime.strptime(value, fmt)
                    return
                except ValueError:
                    continue
            raise DataTypeError(f"'{value}' is not a valid TIMESTAMP")

    @staticmethod
    def sort_key(value: str, col_type: Optional[ColumnType]) -> Tuple[int, float, str]:
        """
        Ordering key for a stored value.

        Empty values sort first; numeric columns compare numerically and
        fall back to text when a value does not parse.
        """
        if value == "":
            return (0, 0.0, "")
        if col_type is not None and col_type.is_numeric:
            try:
                return (1, float(value), "")
            except ValueError:
                pass
        return (2, 0.0, value)
