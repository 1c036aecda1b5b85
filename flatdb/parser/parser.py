"""
SQL Parser - Converts tokens into a ParsedQuery

Uses recursive descent parsing, one method per statement kind.
Clauses that are evaluated later (WHERE, HAVING, JOIN ... ON) are kept
as the source text of their tokens rather than as expression trees.
"""

from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import List, Optional, Tuple

from .lexer import Lexer, Token, TokenType
from ..core.schema import ColumnDef
from ..errors import ParseError, SchemaError


# ============================================================================
# AST Node Types
# ============================================================================

class QueryType(Enum):
    SELECT = auto()
    INSERT = auto()
    UPDATE = auto()
    DELETE = auto()
    CREATE = auto()
    DROP = auto()
    CREATE_DATABASE = auto()
    DROP_DATABASE = auto()
    USE = auto()
    SHOW_TABLES = auto()
    SHOW_DATABASES = auto()
    DESCRIBE = auto()
    CREATE_INDEX = auto()
    DROP_INDEX = auto()


MUTATING_QUERIES = frozenset({
    QueryType.INSERT, QueryType.UPDATE, QueryType.DELETE,
    QueryType.CREATE, QueryType.DROP,
    QueryType.CREATE_DATABASE, QueryType.DROP_DATABASE,
    QueryType.CREATE_INDEX, QueryType.DROP_INDEX,
})


class AggregateFunction(Enum):
    COUNT = auto()
    SUM = auto()
    AVG = auto()
    MIN = auto()
    MAX = auto()


class JoinType(Enum):
    INNER = auto()
    LEFT = auto()
    RIGHT = auto()
    FULL = auto()


@dataclass(frozen=True)
class TableRef:
    """Reference to a table"""
    name: str
    alias: Optional[str] = None


@dataclass(frozen=True)
class SelectColumn:
    """One item of the projection list"""
    name: str
    alias: Optional[str] = None
    table_alias: Optional[str] = None
    aggregate: Optional[AggregateFunction] = None
    expression: str = ""

    @property
    def is_wildcard(self) -> bool:
        return self.name == '*' and self.aggregate is None

    @property
    def header(self) -> str:
        """Column title shown in results"""
        return self.alias or self.name


@dataclass(frozen=True)
class JoinClause:
    """JOIN clause"""
    table: TableRef
    kind: JoinType
    condition: str


@dataclass(frozen=True)
class ParsedQuery:
    """A parsed statement. Fields not used by a statement kind stay empty."""
    type: QueryType
    table_name: str = ""
    table_alias: Optional[str] = None
    tables: Tuple[TableRef, ...] = ()
    columns: Tuple[SelectColumn, ...] = ()
    column_defs: Tuple[ColumnDef, ...] = ()
    where: str = ""
    group_by: Tuple[str, ...] = ()
    having: str = ""
    order_by: str = ""
    order_desc: bool = False
    limit: Optional[int] = None
    values: Tuple[str, ...] = ()
    update_columns: Tuple[str, ...] = ()
    update_values: Tuple[str, ...] = ()
    joins: Tuple[JoinClause, ...] = ()
    database_name: Optional[str] = None
    index_name: Optional[str] = None
    index_column: Optional[str] = None

    @property
    def has_aggregates(self) -> bool:
        return bool(self.group_by) or any(c.aggregate for c in self.columns)

    @property
    def is_multi_table(self) -> bool:
        return len(self.tables) > 1 or bool(self.joins)

    @property
    def is_mutation(self) -> bool:
        return self.type in MUTATING_QUERIES


# ============================================================================
# Parser
# ============================================================================

# Tokens that always end a clause captured as source text
CLAUSE_BOUNDARIES = (
    TokenType.WHERE, TokenType.HAVING, TokenType.JOIN,
    TokenType.SEMICOLON, TokenType.EOF,
)

JOIN_STARTERS = (TokenType.JOIN, TokenType.INNER, TokenType.LEFT,
                 TokenType.RIGHT, TokenType.FULL)


class Parser:
    """
    Recursive descent SQL parser.

    Parses a single SQL statement into a ParsedQuery.
    """

    def __init__(self, tokens: List[Token], text: str):
        self.tokens = tokens
        self.text = text
        self.pos = 0

    def _current(self) -> Token:
        """Get current token"""
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Token:
        """Peek at token ahead"""
        pos = self.pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[pos]

    def _advance(self) -> Token:
        """Advance and return current token"""
        token = self._current()
        self.pos += 1
        return token

    def _match(self, *types: TokenType) -> bool:
        """Check if current token matches any of the types"""
        return self._current().type in types

    def _expect(self, token_type: TokenType, message: str = None) -> Token:
        """Expect a specific token type"""
        if not self._match(token_type):
            msg = message or f"Expected {token_type.name}"
            raise self._error(msg)
        return self._advance()

    def _consume_if(self, token_type: TokenType) -> bool:
        """Consume token if it matches"""
        if self._match(token_type):
            self._advance()
            return True
        return False

    def _error(self, message: str) -> ParseError:
        token = self._current()
        found = token.value or 'end of input'
        return ParseError(f"{message}, found '{found}'", token.start)

    def _expect_name(self, what: str) -> str:
        if not self._current().is_name:
            raise self._error(f"Expected {what} name")
        return self._advance().value

    def _source(self, first: Token, last: Token) -> str:
        return self.text[first.start:last.end]

    def _finish(self) -> None:
        """Only a trailing semicolon may follow a complete statement"""
        self._consume_if(TokenType.SEMICOLON)
        if not self._match(TokenType.EOF):
            raise self._error("Unexpected text after statement")

    def parse(self) -> ParsedQuery:
        """Parse a single statement"""
        if self._match(TokenType.SELECT):
            query = self._parse_select()
        elif self._match(TokenType.INSERT):
            query = self._parse_insert()
        elif self._match(TokenType.UPDATE):
            query = self._parse_update()
        elif self._match(TokenType.DELETE):
            query = self._parse_delete()
        elif self._match(TokenType.CREATE):
            query = self._parse_create()
        elif self._match(TokenType.DROP):
            query = self._parse_drop()
        elif self._match(TokenType.USE):
            self._advance()
            query = ParsedQuery(QueryType.USE, database_name=self._expect_name("database"))
        elif self._match(TokenType.SHOW):
            query = self._parse_show()
        elif self._match(TokenType.DESCRIBE):
            self._advance()
            query = ParsedQuery(QueryType.DESCRIBE, table_name=self._expect_name("table"))
        elif self._match(TokenType.EOF):
            raise ParseError("Empty statement", 0)
        else:
            raise self._error("Unsupported statement")

        self._finish()
        return query

    # ------------------------------------------------------------------
    # Clause helpers
    # ------------------------------------------------------------------

    def _capture_clause(self, what: str, strip_qualifiers: bool = False) -> str:
        """Consume tokens up to the next clause keyword and return their source text"""
        first = self._current()
        last = None
        # Qualifier spans (alias + dot) to cut out, relative to first.start
        cuts = []
        while not self._at_clause_end():
            last = self._advance()
            if (strip_qualifiers and last.is_name
                    and self._match(TokenType.DOT)):
                dot = self._advance()
                cuts.append((last.start, dot.end))
                last = dot

        if last is None:
            raise self._error(f"Expected {what} condition")

        text = self._source(first, last)
        for start, end in reversed(cuts):
            text = text[:start - first.start] + text[end - first.start:]
        return text.strip()

    def _at_clause_end(self) -> bool:
        """Keywords that double as names only end a clause in their clause position"""
        token_type = self._current().type
        next_type = self._peek().type
        if token_type in CLAUSE_BOUNDARIES:
            return True
        if token_type in (TokenType.GROUP, TokenType.ORDER):
            return next_type == TokenType.BY
        if token_type == TokenType.LIMIT:
            return next_type == TokenType.INTEGER
        if token_type == TokenType.INNER:
            return next_type == TokenType.JOIN
        if token_type in (TokenType.LEFT, TokenType.RIGHT, TokenType.FULL):
            return next_type in (TokenType.JOIN, TokenType.OUTER)
        return False

    def _parse_table_ref(self) -> TableRef:
        """Parse table reference with optional alias"""
        name = self._expect_name("table")

        alias = None
        if self._consume_if(TokenType.AS):
            alias = self._expect_name("alias")
        elif self._match(TokenType.IDENTIFIER):
            alias = self._advance().value

        return TableRef(name=name, alias=alias)

    def _parse_column_ref(self) -> Tuple[Optional[str], str]:
        """[alias.]column"""
        name = self._expect_name("column")
        if self._consume_if(TokenType.DOT):
            return name, self._expect_name("column")
        return None, name

    def _parse_value(self, terminators: Tuple[TokenType, ...]) -> str:
        """
        Parse one literal value.

        Quoted strings lose their quotes and NULL becomes the empty string;
        anything else keeps its source spelling (e.g. -5 or 2023-09-01).
        """
        if self._match(TokenType.STRING):
            token = self._advance()
            if not self._match(*terminators):
                raise self._error("Expected ',' after string value")
            return token.value
        if self._match(TokenType.NULL) and self._peek().type in terminators:
            self._advance()
            return ""

        first = self._current()
        last = None
        depth = 0
        while not (depth == 0 and self._match(*terminators)):
            if self._match(TokenType.EOF):
                raise self._error("Unterminated value list")
            if self._match(TokenType.LPAREN):
                depth += 1
            elif self._match(TokenType.RPAREN):
                depth -= 1
            last = self._advance()

        return "" if last is None else self._source(first, last)

    # ------------------------------------------------------------------
    # SELECT
    # ------------------------------------------------------------------

    def _parse_select(self) -> ParsedQuery:
        """Parse SELECT statement"""
        self._expect(TokenType.SELECT)

        columns = self._parse_select_columns()

        self._expect(TokenType.FROM, "SELECT requires a FROM clause")
        tables = [self._parse_table_ref()]
        while self._consume_if(TokenType.COMMA):
            tables.append(self._parse_table_ref())

        joins = []
        while self._match(*JOIN_STARTERS):
            joins.append(self._parse_join())

        where = ""
        if self._consume_if(TokenType.WHERE):
            where = self._capture_clause("WHERE")

        group_by = []
        having = ""
        if self._consume_if(TokenType.GROUP):
            self._expect(TokenType.BY)
            while True:
                group_by.append(self._parse_column_ref()[1])
                if not self._consume_if(TokenType.COMMA):
                    break
        if self._consume_if(TokenType.HAVING):
            having = self._capture_clause("HAVING", strip_qualifiers=True)

        order_by = ""
        order_desc = False
        if self._consume_if(TokenType.ORDER):
            self._expect(TokenType.BY)
            order_by = self._parse_order_target()
            if self._consume_if(TokenType.DESC):
                order_desc = True
            else:
                self._consume_if(TokenType.ASC)

        limit = None
        if self._consume_if(TokenType.LIMIT):
            limit = int(self._expect(TokenType.INTEGER, "LIMIT expects a number").value)

        return ParsedQuery(
            QueryType.SELECT,
            table_name=tables[0].name,
            table_alias=tables[0].alias,
            tables=tuple(tables),
            columns=tuple(columns),
            where=where,
            group_by=tuple(group_by),
            having=having,
            order_by=order_by,
            order_desc=order_desc,
            limit=limit,
            joins=tuple(joins),
        )

    def _parse_select_columns(self) -> List[SelectColumn]:
        """Parse SELECT column list"""
        columns = []

        while True:
            if self._match(TokenType.STAR):
                self._advance()
                columns.append(SelectColumn(name='*', expression='*'))
            elif (self._match(TokenType.IDENTIFIER)
                  and self._peek().type == TokenType.LPAREN):
                columns.append(self._parse_aggregate())
            else:
                first = self._current()
                table_alias, name = self._parse_column_ref()
                expression = self._source(first, self.tokens[self.pos - 1])
                columns.append(SelectColumn(
                    name=name,
                    alias=self._parse_column_alias(),
                    table_alias=table_alias,
                    expression=expression,
                ))

            if not self._consume_if(TokenType.COMMA):
                break

        return columns

    def _parse_column_alias(self) -> Optional[str]:
        if self._consume_if(TokenType.AS):
            return self._expect_name("alias")
        if self._match(TokenType.IDENTIFIER):
            # Implicit alias
            return self._advance().value
        return None

    def _parse_aggregate(self) -> SelectColumn:
        """FUNC([alias.]col) or COUNT(*)"""
        first = self._advance()
        try:
            func = AggregateFunction[first.value.upper()]
        except KeyError:
            raise ParseError(f"Unknown function: {first.value}", first.start)

        self._expect(TokenType.LPAREN)
        table_alias = None
        if self._match(TokenType.STAR):
            if func != AggregateFunction.COUNT:
                raise self._error(f"{func.name} does not accept '*'")
            self._advance()
            name = '*'
        else:
            table_alias, name = self._parse_column_ref()
        last = self._expect(TokenType.RPAREN, "Unterminated parenthesis in function call")

        expression = self._source(first, last)
        alias = self._parse_column_alias() or expression
        return SelectColumn(name=name, alias=alias, table_alias=table_alias,
                            aggregate=func, expression=expression)

    def _parse_join(self) -> JoinClause:
        """Parse JOIN clause"""
        kind = JoinType.INNER

        if self._consume_if(TokenType.INNER):
            kind = JoinType.INNER
        elif self._consume_if(TokenType.LEFT):
            self._consume_if(TokenType.OUTER)
            kind = JoinType.LEFT
        elif self._consume_if(TokenType.RIGHT):
            self._consume_if(TokenType.OUTER)
            kind = JoinType.RIGHT
        elif self._consume_if(TokenType.FULL):
            self._consume_if(TokenType.OUTER)
            kind = JoinType.FULL

        self._expect(TokenType.JOIN)
        table = self._parse_table_ref()
        self._expect(TokenType.ON, "JOIN requires an ON condition")
        condition = self._capture_clause("ON")

        return JoinClause(table=table, kind=kind, condition=condition)

    def _parse_order_target(self) -> str:
        """A column, alias.column, or an aggregate call such as AVG(score)"""
        first = self._current()
        if self._match(TokenType.IDENTIFIER) and self._peek().type == TokenType.LPAREN:
            self._advance()
            while not self._match(TokenType.RPAREN):
                if self._match(TokenType.EOF):
                    raise self._error("Unterminated parenthesis in ORDER BY")
                self._advance()
            return self._source(first, self._advance())
        self._parse_column_ref()
        return self._source(first, self.tokens[self.pos - 1])

    # ------------------------------------------------------------------
    # INSERT / UPDATE / DELETE
    # ------------------------------------------------------------------

    def _parse_insert(self) -> ParsedQuery:
        """Parse INSERT statement"""
        self._expect(TokenType.INSERT)
        self._expect(TokenType.INTO)

        table = self._expect_name("table")

        # Optional column list, accepted but not used
        if self._consume_if(TokenType.LPAREN):
            while True:
                self._expect_name("column")
                if not self._consume_if(TokenType.COMMA):
                    break
            self._expect(TokenType.RPAREN)

        self._expect(TokenType.VALUES, "INSERT requires a VALUES clause")
        self._expect(TokenType.LPAREN, "Expected '(' after VALUES")

        values = []
        while True:
            values.append(self._parse_value((TokenType.COMMA, TokenType.RPAREN)))
            if not self._consume_if(TokenType.COMMA):
                break
        self._expect(TokenType.RPAREN, "Unterminated parenthesis in VALUES")

        if self._match(TokenType.COMMA):
            raise self._error("Only one row may be inserted per statement")

        return ParsedQuery(QueryType.INSERT, table_name=table, values=tuple(values))

    def _parse_update(self) -> ParsedQuery:
        """Parse UPDATE statement"""
        self._expect(TokenType.UPDATE)

        table = self._expect_name("table")

        self._expect(TokenType.SET, "UPDATE requires a SET clause")

        update_columns = []
        update_values = []
        terminators = (TokenType.COMMA, TokenType.WHERE,
                       TokenType.SEMICOLON, TokenType.EOF)
        while True:
            update_columns.append(self._parse_column_ref()[1])
            self._expect(TokenType.EQUALS, "Expected '=' in SET assignment")
            update_values.append(self._parse_value(terminators))

            if not self._consume_if(TokenType.COMMA):
                break

        where = ""
        if self._consume_if(TokenType.WHERE):
            where = self._capture_clause("WHERE")

        return ParsedQuery(
            QueryType.UPDATE,
            table_name=table,
            update_columns=tuple(update_columns),
            update_values=tuple(update_values),
            where=where,
        )

    def _parse_delete(self) -> ParsedQuery:
        """Parse DELETE statement"""
        self._expect(TokenType.DELETE)
        self._expect(TokenType.FROM, "DELETE requires a FROM clause")

        table = self._expect_name("table")

        where = ""
        if self._consume_if(TokenType.WHERE):
            where = self._capture_clause("WHERE")

        return ParsedQuery(QueryType.DELETE, table_name=table, where=where)

    # ------------------------------------------------------------------
    # CREATE / DROP
    # ------------------------------------------------------------------

    def _parse_create(self) -> ParsedQuery:
        """Parse CREATE statement"""
        self._expect(TokenType.CREATE)

        if self._consume_if(TokenType.TABLE):
            return self._parse_create_table()
        elif self._consume_if(TokenType.DATABASE):
            return ParsedQuery(QueryType.CREATE_DATABASE,
                               database_name=self._expect_name("database"))
        elif self._consume_if(TokenType.INDEX):
            return self._parse_index_target(QueryType.CREATE_INDEX)
        else:
            raise self._error("Expected TABLE, DATABASE or INDEX after CREATE")

    def _parse_create_table(self) -> ParsedQuery:
        """Parse CREATE TABLE statement"""
        table = self._expect_name("table")

        self._expect(TokenType.LPAREN, "CREATE TABLE requires a column list")

        columns: List[ColumnDef] = []
        while True:
            if self._match(TokenType.FOREIGN) and self._peek().type == TokenType.KEY:
                self._parse_foreign_key(columns)
            else:
                columns.append(self._parse_column_def())
            if not self._consume_if(TokenType.COMMA):
                break

        self._expect(TokenType.RPAREN, "Unterminated parenthesis in column list")

        return ParsedQuery(QueryType.CREATE, table_name=table, column_defs=tuple(columns))

    def _parse_column_def(self) -> ColumnDef:
        """Parse column definition"""
        first = self._current()
        name = self._expect_name("column")

        # Parse data type
        type_parts = [self._expect(TokenType.IDENTIFIER, f"Expected type for column '{name}'").value]

        # Check for VARCHAR(n) style types
        if self._consume_if(TokenType.LPAREN):
            type_parts.append('(')
            type_parts.append(self._expect(TokenType.INTEGER).value)
            type_parts.append(')')
            self._expect(TokenType.RPAREN)

        primary_key = False
        nullable = True

        # Parse constraints, in any order
        while True:
            if self._consume_if(TokenType.PRIMARY):
                self._expect(TokenType.KEY)
                primary_key = True
            elif self._consume_if(TokenType.NOT):
                self._expect(TokenType.NULL)
                nullable = False
            elif self._consume_if(TokenType.NULL):
                pass
            else:
                break

        try:
            return ColumnDef.build(name, ''.join(type_parts),
                                   nullable=nullable, primary_key=primary_key)
        except SchemaError as e:
            raise ParseError(str(e), first.start) from e

    def _parse_foreign_key(self, columns: List[ColumnDef]) -> None:
        """FOREIGN KEY (col) REFERENCES table(col), attached to an earlier column"""
        start = self._expect(TokenType.FOREIGN)
        self._expect(TokenType.KEY)
        self._expect(TokenType.LPAREN)
        column = self._expect_name("column")
        self._expect(TokenType.RPAREN)
        self._expect(TokenType.REFERENCES)
        ref_table = self._expect_name("table")
        self._expect(TokenType.LPAREN)
        ref_column = self._expect_name("column")
        self._expect(TokenType.RPAREN)

        for idx, col in enumerate(columns):
            if col.name.lower() == column.lower():
                columns[idx] = replace(col, is_foreign_key=True,
                                       reference_table=ref_table,
                                       reference_column=ref_column)
                return
        raise ParseError(f"FOREIGN KEY refers to undeclared column '{column}'", start.start)

    def _parse_index_target(self, query_type: QueryType) -> ParsedQuery:
        """[name] ON table (column)"""
        name = None
        if self._current().is_name:
            name = self._advance().value
        self._expect(TokenType.ON)
        table = self._expect_name("table")
        self._expect(TokenType.LPAREN)
        column = self._expect_name("column")
        self._expect(TokenType.RPAREN)
        return ParsedQuery(query_type, table_name=table, index_name=name, index_column=column)

    def _parse_drop(self) -> ParsedQuery:
        """Parse DROP statement"""
        self._expect(TokenType.DROP)

        if self._consume_if(TokenType.TABLE):
            return ParsedQuery(QueryType.DROP, table_name=self._expect_name("table"))
        elif self._consume_if(TokenType.DATABASE):
            return ParsedQuery(QueryType.DROP_DATABASE,
                               database_name=self._expect_name("database"))
        elif self._consume_if(TokenType.INDEX):
            return self._parse_index_target(QueryType.DROP_INDEX)
        else:
            raise self._error("Expected TABLE, DATABASE or INDEX after DROP")

    def _parse_show(self) -> ParsedQuery:
        """Parse SHOW TABLES / SHOW DATABASES"""
        self._expect(TokenType.SHOW)
        if self._consume_if(TokenType.TABLES):
            return ParsedQuery(QueryType.SHOW_TABLES)
        if self._consume_if(TokenType.DATABASES):
            return ParsedQuery(QueryType.SHOW_DATABASES)
        raise self._error("Expected TABLES or DATABASES after SHOW")


def parse_sql(sql: str) -> ParsedQuery:
    """Parse one SQL statement"""
    text = sql.strip().rstrip(';').rstrip()
    tokens = Lexer(text).tokenize()
    return Parser(tokens, text).parse()
