"""Parser module - Lexer and Parser"""

from .lexer import Lexer, Token, TokenType
from .parser import Parser, ParsedQuery, QueryType, parse_sql

__all__ = ['Lexer', 'Token', 'TokenType', 'Parser', 'ParsedQuery', 'QueryType', 'parse_sql']
