"""
SQL Lexer - Tokenizes SQL statements

Converts raw SQL strings into a stream of tokens for the parser.
Every token remembers where it came from in the source text so that
clauses can be handed on verbatim.
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import List, Optional

from ..errors import ParseError


class TokenType(Enum):
    """Types of tokens in SQL"""
    # Keywords
    SELECT = auto()
    FROM = auto()
    WHERE = auto()
    INSERT = auto()
    INTO = auto()
    VALUES = auto()
    UPDATE = auto()
    SET = auto()
    DELETE = auto()
    CREATE = auto()
    DROP = auto()
    TABLE = auto()
    DATABASE = auto()
    INDEX = auto()
    ON = auto()
    PRIMARY = auto()
    KEY = auto()
    FOREIGN = auto()
    REFERENCES = auto()
    NOT = auto()
    NULL = auto()
    AND = auto()
    JOIN = auto()
    INNER = auto()
    LEFT = auto()
    RIGHT = auto()
    FULL = auto()
    OUTER = auto()
    ORDER = auto()
    BY = auto()
    ASC = auto()
    DESC = auto()
    LIMIT = auto()
    AS = auto()
    GROUP = auto()
    HAVING = auto()
    USE = auto()
    SHOW = auto()
    TABLES = auto()
    DATABASES = auto()
    DESCRIBE = auto()

    # Operators
    EQUALS = auto()
    NOT_EQUALS = auto()
    LESS_THAN = auto()
    GREATER_THAN = auto()
    LESS_EQUALS = auto()
    GREATER_EQUALS = auto()
    PLUS = auto()
    MINUS = auto()
    DIVIDE = auto()

    # Punctuation
    LPAREN = auto()
    RPAREN = auto()
    COMMA = auto()
    SEMICOLON = auto()
    DOT = auto()
    STAR = auto()

    # Literals
    INTEGER = auto()
    FLOAT = auto()
    STRING = auto()
    IDENTIFIER = auto()

    # Special
    EOF = auto()


COMPARISON_TOKENS = {
    TokenType.EQUALS: '=',
    TokenType.NOT_EQUALS: '!=',
    TokenType.LESS_THAN: '<',
    TokenType.GREATER_THAN: '>',
    TokenType.LESS_EQUALS: '<=',
    TokenType.GREATER_EQUALS: '>=',
}

# Keywords that may also name a table, column, alias or database
NAME_KEYWORDS = frozenset({
    TokenType.KEY, TokenType.INDEX, TokenType.DATABASE, TokenType.DATABASES,
    TokenType.TABLES, TokenType.ASC, TokenType.DESC, TokenType.LIMIT,
    TokenType.ORDER, TokenType.GROUP, TokenType.INNER, TokenType.OUTER,
    TokenType.LEFT, TokenType.RIGHT, TokenType.FULL, TokenType.PRIMARY,
    TokenType.FOREIGN, TokenType.REFERENCES, TokenType.USE, TokenType.SHOW,
    TokenType.DESCRIBE,
})


@dataclass(frozen=True)
class Token:
    """A single token; start/end are offsets into the source text"""
    type: TokenType
    value: str
    start: int
    end: int

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r})"

    @property
    def is_name(self) -> bool:
        """Identifier, or a keyword that can double as a name"""
        return self.type == TokenType.IDENTIFIER or self.type in NAME_KEYWORDS


class Lexer:
    """SQL Lexer - converts SQL text to tokens"""

    # Keywords mapping
    KEYWORDS = {
        'SELECT': TokenType.SELECT,
        'FROM': TokenType.FROM,
        'WHERE': TokenType.WHERE,
        'INSERT': TokenType.INSERT,
        'INTO': TokenType.INTO,
        'VALUES': TokenType.VALUES,
        'UPDATE': TokenType.UPDATE,
        'SET': TokenType.SET,
        'DELETE': TokenType.DELETE,
        'CREATE': TokenType.CREATE,
        'DROP': TokenType.DROP,
        'TABLE': TokenType.TABLE,
        'DATABASE': TokenType.DATABASE,
        'INDEX': TokenType.INDEX,
        'ON': TokenType.ON,
        'PRIMARY': TokenType.PRIMARY,
        'KEY': TokenType.KEY,
        'FOREIGN': TokenType.FOREIGN,
        'REFERENCES': TokenType.REFERENCES,
        'NOT': TokenType.NOT,
        'NULL': TokenType.NULL,
        'AND': TokenType.AND,
        'JOIN': TokenType.JOIN,
        'INNER': TokenType.INNER,
        'LEFT': TokenType.LEFT,
        'RIGHT': TokenType.RIGHT,
        'FULL': TokenType.FULL,
        'OUTER': TokenType.OUTER,
        'ORDER': TokenType.ORDER,
        'BY': TokenType.BY,
        'ASC': TokenType.ASC,
        'DESC': TokenType.DESC,
        'LIMIT': TokenType.LIMIT,
        'AS': TokenType.AS,
        'GROUP': TokenType.GROUP,
        'HAVING': TokenType.HAVING,
        'USE': TokenType.USE,
        'SHOW': TokenType.SHOW,
        'TABLES': TokenType.TABLES,
        'DATABASES': TokenType.DATABASES,
        'DESCRIBE': TokenType.DESCRIBE,
    }

    # Single-character tokens
    SINGLE_CHAR_TOKENS = {
        '=': TokenType.EQUALS,
        '<': TokenType.LESS_THAN,
        '>': TokenType.GREATER_THAN,
        '+': TokenType.PLUS,
        '-': TokenType.MINUS,
        '*': TokenType.STAR,
        '/': TokenType.DIVIDE,
        '(': TokenType.LPAREN,
        ')': TokenType.RPAREN,
        ',': TokenType.COMMA,
        ';': TokenType.SEMICOLON,
        '.': TokenType.DOT,
    }

    # Two-character operators
    DOUBLE_CHAR_TOKENS = {
        '!=': TokenType.NOT_EQUALS,
        '<>': TokenType.NOT_EQUALS,
        '<=': TokenType.LESS_EQUALS,
        '>=': TokenType.GREATER_EQUALS,
    }

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def _current_char(self) -> Optional[str]:
        """Get current character or None if at end"""
        if self.pos >= len(self.text):
            return None
        return self.text[self.pos]

    def _peek(self, offset: int = 1) -> Optional[str]:
        """Peek at character ahead"""
        pos = self.pos + offset
        if pos >= len(self.text):
            return None
        return self.text[pos]

    def _skip_whitespace(self) -> None:
        while self._current_char() is not None and self._current_char().isspace():
            self.pos += 1

    def _skip_comment(self) -> None:
        """Skip SQL comments"""
        if self._current_char() == '-' and self._peek() == '-':
            # Single line comment
            while self._current_char() is not None and self._current_char() != '\n':
                self.pos += 1
        elif self._current_char() == '/' and self._peek() == '*':
            # Multi-line comment
            end = self.text.find('*/', self.pos + 2)
            self.pos = len(self.text) if end == -1 else end + 2

    def _read_string(self, quote_char: str) -> Token:
        """Read a string literal; a doubled quote stands for one quote"""
        start = self.pos
        self.pos += 1  # Opening quote

        value = []
        while True:
            char = self._current_char()
            if char is None:
                raise ParseError("Unterminated string literal", start)
            if char == quote_char:
                if self._peek() == quote_char:
                    value.append(quote_char)
                    self.pos += 2
                    continue
                self.pos += 1  # Closing quote
                break
            if char == '\\' and self._peek() == quote_char:
                self.pos += 1  # Skip escape
                char = quote_char
            value.append(char)
            self.pos += 1

        return Token(TokenType.STRING, ''.join(value), start, self.pos)

    def _read_number(self) -> Token:
        """Read a numeric literal, keeping its source spelling"""
        start = self.pos
        has_dot = False

        while self._current_char() is not None and (self._current_char().isdigit() or
                                                    self._current_char() == '.'):
            if self._current_char() == '.':
                if has_dot:
                    break
                has_dot = True
            self.pos += 1

        token_type = TokenType.FLOAT if has_dot else TokenType.INTEGER
        return Token(token_type, self.text[start:self.pos], start, self.pos)

    def _read_identifier(self) -> Token:
        """Read an identifier or keyword"""
        start = self.pos

        while self._current_char() is not None and (self._current_char().isalnum() or
                                                    self._current_char() == '_'):
            self.pos += 1

        identifier = self.text[start:self.pos]
        upper_id = identifier.upper()

        # Check if it's a keyword
        if upper_id in self.KEYWORDS:
            return Token(self.KEYWORDS[upper_id], identifier, start, self.pos)

        return Token(TokenType.IDENTIFIER, identifier, start, self.pos)

    def tokenize(self) -> List[Token]:
        """Tokenize the entire input"""
        tokens = []

        while self._current_char() is not None:
            self._skip_whitespace()

            if self._current_char() is None:
                break

            # Skip comments
            if (self._current_char() == '-' and self._peek() == '-') or \
               (self._current_char() == '/' and self._peek() == '*'):
                self._skip_comment()
                continue

            char = self._current_char()
            start = self.pos

            # String literals
            if char in '"\'':
                tokens.append(self._read_string(char))
                continue

            # Numbers
            if char.isdigit():
                tokens.append(self._read_number())
                continue

            # Identifiers and keywords
            if char.isalpha() or char == '_':
                tokens.append(self._read_identifier())
                continue

            pair = char + (self._peek() or '')
            if pair in self.DOUBLE_CHAR_TOKENS:
                self.pos += 2
                tokens.append(Token(self.DOUBLE_CHAR_TOKENS[pair], pair, start, self.pos))
                continue

            if char in self.SINGLE_CHAR_TOKENS:
                self.pos += 1
                tokens.append(Token(self.SINGLE_CHAR_TOKENS[char], char, start, self.pos))
                continue

            # Unknown character - skip
            self.pos += 1

        # Add EOF token
        tokens.append(Token(TokenType.EOF, '', self.pos, self.pos))

        return tokens
