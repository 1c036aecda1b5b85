"""
Predicate evaluation for WHERE, JOIN ... ON and HAVING clauses.

A WHERE clause is a conjunction of simple comparisons:

    operand op operand [AND operand op operand ...]

Quoted strings and numbers are literals, identifiers ([alias.]column)
are looked up in the current row. Row values are text and WHERE
comparisons are plain string comparisons, so '9' > '10'.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..parser.lexer import COMPARISON_TOKENS, Lexer, Token, TokenType
from ..parser.parser import AggregateFunction
from ..errors import ConditionError, ParseError, SchemaError

# HAVING equality tolerance
EPSILON = 1e-10

# Resolves a column reference to the row's value, or None if unknown
Resolver = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class Operand:
    text: str
    is_literal: bool


@dataclass(frozen=True)
class Comparison:
    left: Operand
    op: str
    right: Operand


def _tokens(clause: str) -> List[Token]:
    try:
        return Lexer(clause).tokenize()[:-1]  # drop EOF
    except ParseError as e:
        raise ConditionError(f"Invalid condition '{clause}': {e.reason}") from e


def _operand(clause: str, tokens: List[Token], side: str) -> Operand:
    if not tokens:
        raise ConditionError(f"Missing {side} operand in condition '{clause}'")

    if len(tokens) == 1:
        token = tokens[0]
        if token.type == TokenType.STRING:
            return Operand(token.value, True)
        if token.type == TokenType.NULL:
            return Operand("", True)
        if token.is_name:
            return Operand(token.value, False)

    if (len(tokens) == 3 and tokens[1].type == TokenType.DOT
            and tokens[0].is_name and tokens[2].is_name):
        return Operand(f"{tokens[0].value}.{tokens[2].value}", False)

    # Numbers and other unquoted text keep their spelling
    return Operand(clause[tokens[0].start:tokens[-1].end], True)


def _split_on_and(tokens: List[Token]) -> List[List[Token]]:
    parts = [[]]
    for token in tokens:
        if token.type == TokenType.AND:
            parts.append([])
        else:
            parts[-1].append(token)
    return parts


def parse_conditions(clause: str) -> List[Comparison]:
    """Split a clause on AND and parse each conjunct"""
    comparisons = []
    for part in _split_on_and(_tokens(clause)):
        if not part:
            raise ConditionError(f"Empty condition in '{clause}'")
        text = clause[part[0].start:part[-1].end]

        # The first operator in the conjunct wins
        op_idx = next((i for i, t in enumerate(part) if t.type in COMPARISON_TOKENS), None)
        if op_idx is None:
            raise ConditionError(f"No comparison operator in condition '{text}'")

        comparisons.append(Comparison(
            left=_operand(clause, part[:op_idx], "left"),
            op=COMPARISON_TOKENS[part[op_idx].type],
            right=_operand(clause, part[op_idx + 1:], "right"),
        ))
    return comparisons


def compare_text(left: str, op: str, right: str) -> bool:
    """Lexicographic comparison of two stored values"""
    if op == '=':
        return left == right
    elif op == '!=':
        return left != right
    elif op == '<':
        return left < right
    elif op == '>':
        return left > right
    elif op == '<=':
        return left <= right
    elif op == '>=':
        return left >= right
    raise ConditionError(f"Unknown operator: {op}")


def compare_numbers(left: float, op: str, right: float) -> bool:
    if op == '=':
        return abs(left - right) < EPSILON
    elif op == '!=':
        return abs(left - right) >= EPSILON
    elif op == '<':
        return left < right
    elif op == '>':
        return left > right
    elif op == '<=':
        return left <= right
    elif op == '>=':
        return left >= right
    raise ConditionError(f"Unknown operator: {op}")


class Predicate:
    """A compiled WHERE/ON clause. An empty clause matches every row."""

    def __init__(self, clause: str = ""):
        self.clause = clause.strip()
        self.comparisons = parse_conditions(self.clause) if self.clause else []

    def __bool__(self) -> bool:
        return bool(self.comparisons)

    def matches(self, resolve: Resolver, bare_words_are_literals: bool = False) -> bool:
        """
        Evaluate against one row.

        With bare_words_are_literals, an unqualified right-hand word that
        is not a column is compared as text.
        """
        for comparison in self.comparisons:
            left = self._value(comparison.left, resolve, False)
            right = self._value(comparison.right, resolve, bare_words_are_literals)
            if not compare_text(left, comparison.op, right):
                return False
        return True

    @staticmethod
    def _value(operand: Operand, resolve: Resolver, fallback: bool) -> str:
        if operand.is_literal:
            return operand.text
        value = resolve(operand.text)
        if value is not None:
            return value
        if fallback and '.' not in operand.text:
            return operand.text
        raise SchemaError(f"Unknown column '{operand.text}' in condition")


@dataclass(frozen=True)
class HavingCondition:
    """FUNC(col) op number"""
    func: AggregateFunction
    column: str
    op: str
    value: float

    def matches(self, computed: Optional[float]) -> bool:
        if computed is None:
            return False
        return compare_numbers(computed, self.op, self.value)


def parse_having(clause: str) -> HavingCondition:
    tokens = _tokens(clause)
    op_idx = next((i for i, t in enumerate(tokens) if t.type in COMPARISON_TOKENS), None)
    if op_idx is None:
        raise ConditionError(f"No comparison operator in HAVING '{clause}'")

    call = tokens[:op_idx]
    if (len(call) != 4 or call[0].type != TokenType.IDENTIFIER
            or call[1].type != TokenType.LPAREN or call[3].type != TokenType.RPAREN
            or not (call[2].is_name or call[2].type == TokenType.STAR)):
        raise ConditionError(f"HAVING expects FUNC(column) op value, got '{clause}'")
    try:
        func = AggregateFunction[call[0].value.upper()]
    except KeyError:
        raise ConditionError(f"Unknown aggregate function in HAVING: {call[0].value}")

    literal = tokens[op_idx + 1:]
    if not literal:
        raise ConditionError(f"Missing value in HAVING '{clause}'")
    literal_text = clause[literal[0].start:literal[-1].end]
    if literal[0].type == TokenType.STRING and len(literal) == 1:
        literal_text = literal[0].value
    try:
        value = float(literal_text)
    except ValueError:
        raise ConditionError(f"HAVING value '{literal_text}' is not a number")

    return HavingCondition(func, call[2].value, COMPARISON_TOKENS[tokens[op_idx].type], value)


def row_resolver(positions: Callable[[str], Optional[int]], row: Sequence[str]) -> Resolver:
    """Build a Resolver from a name -> position lookup"""
    def resolve(ref: str) -> Optional[str]:
        pos = positions(ref)
        return None if pos is None else row[pos]
    return resolve
