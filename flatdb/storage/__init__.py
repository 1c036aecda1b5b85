"""Storage module - Persistence layer"""

from .engine import StorageEngine, decode_row, encode_row

__all__ = ['StorageEngine', 'decode_row', 'encode_row']
