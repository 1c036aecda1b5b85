"""Indexing module - Secondary hash indices"""

from .hash_index import SecondaryIndex

__all__ = ['SecondaryIndex']
