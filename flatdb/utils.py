"""
Utility functions shared across FlatDB modules.
"""

import logging
import math
from typing import List, Optional, Tuple

from .config import LOG_FORMAT, DEFAULT_LOG_LEVEL


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""
    return logging.getLogger(name)


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure root logging for the CLI and the web console."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.WARNING),
                        format=LOG_FORMAT)


def split_qualified(ref: str) -> Tuple[Optional[str], str]:
    """Split 'alias.column' into (alias, column); alias is None when absent."""
    ref = ref.strip()
    if '.' in ref:
        alias, column = ref.split('.', 1)
        return alias.strip(), column.strip()
    return None, ref


def split_statements(sql: str) -> List[str]:
    """Split SQL text on semicolons that are not inside quotes."""
    statements = []
    current = []
    quote = None

    for char in sql:
        if quote:
            if char == quote:
                quote = None
        elif char in '\'"':
            quote = char
        elif char == ';':
            statement = ''.join(current).strip()
            if statement:
                statements.append(statement)
            current = []
            continue
        current.append(char)

    statement = ''.join(current).strip()
    if statement:
        statements.append(statement)
    return statements


def format_number(value: float) -> str:
    """Render a computed number without a trailing '.0' when integral."""
    value = float(value)
    if math.isfinite(value) and value.is_integer():
        return str(int(value))
    return repr(round(value, 10))
