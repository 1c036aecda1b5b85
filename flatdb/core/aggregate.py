"""
Grouped aggregation shared by single-table and joined SELECTs.

Rows are partitioned by their GROUP BY values, one output row per
partition in ascending key order. Without GROUP BY all rows form a
single partition, so an empty input still yields one row (COUNT 0).
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .predicate import HavingCondition, parse_having
from ..parser.parser import AggregateFunction, SelectColumn
from ..errors import DataTypeError, SchemaError
from ..utils import format_number, get_logger

logger = get_logger(__name__)

# Maps (table_alias, column) to a position in the row
Locator = Callable[[Optional[str], str], int]


def _numbers(func: AggregateFunction, values: List[str]) -> List[float]:
    numbers = []
    for value in values:
        try:
            numbers.append(float(value))
        except ValueError:
            raise DataTypeError(f"{func.name} requires numeric values, got '{value}'")
    return numbers


def compute_number(func: AggregateFunction, values: List[str],
                   row_count: int, count_all: bool = False) -> Optional[float]:
    """Numeric aggregate over a partition; None when there is nothing to aggregate"""
    if func == AggregateFunction.COUNT:
        return float(row_count if count_all else len([v for v in values if v != ""]))

    present = [v for v in values if v != ""]
    if not present:
        return None
    numbers = _numbers(func, present)
    if func == AggregateFunction.SUM:
        return sum(numbers)
    if func == AggregateFunction.AVG:
        return sum(numbers) / len(numbers)
    if func == AggregateFunction.MIN:
        return min(numbers)
    return max(numbers)


def compute(func: AggregateFunction, values: List[str],
            row_count: int, count_all: bool = False) -> str:
    """
    Aggregate a partition's column values to display text.

    MIN/MAX compare numerically when every value is a number and fall
    back to string order otherwise; they return the stored value.
    """
    if func in (AggregateFunction.MIN, AggregateFunction.MAX):
        present = [v for v in values if v != ""]
        if not present:
            return ""
        pick = min if func == AggregateFunction.MIN else max
        try:
            return pick(present, key=float)
        except ValueError:
            return pick(present)

    result = compute_number(func, values, row_count, count_all)
    return "" if result is None else format_number(result)


def _check_projection(columns: Sequence[SelectColumn], group_by: Sequence[str]) -> None:
    grouped = {name.lower() for name in group_by}
    for col in columns:
        if col.aggregate is not None:
            continue
        if col.is_wildcard:
            raise SchemaError("'*' cannot be combined with aggregate functions")
        if group_by and col.name.lower() not in grouped:
            raise SchemaError(f"Column '{col.name}' must appear in GROUP BY")


def _qualifier(columns: Sequence[SelectColumn], name: str) -> Optional[str]:
    """Table alias a projected column gives to an unqualified GROUP BY or HAVING name"""
    aliases = {col.table_alias.lower() for col in columns
               if col.table_alias and col.name.lower() == name.lower()}
    if len(aliases) > 1:
        raise SchemaError(f"Column '{name}' is ambiguous in GROUP BY or HAVING")
    return aliases.pop() if aliases else None


def aggregate_rows(columns: Sequence[SelectColumn], rows: List[List[str]],
                   locate: Locator, group_by: Sequence[str] = (),
                   having: str = "") -> List[List[str]]:
    """Evaluate an aggregate projection over already filtered rows"""
    _check_projection(columns, group_by)

    positions = [
        None if col.aggregate and col.name == '*' else locate(col.table_alias, col.name)
        for col in columns
    ]
    group_positions = [locate(_qualifier(columns, name), name) for name in group_by]

    condition: Optional[HavingCondition] = parse_having(having) if having else None
    having_pos = None
    if condition is not None and condition.column != '*':
        having_pos = locate(_qualifier(columns, condition.column), condition.column)

    if group_by:
        partitions: Dict[Tuple[str, ...], List[List[str]]] = {}
        for row in rows:
            key = tuple(row[pos] for pos in group_positions)
            partitions.setdefault(key, []).append(row)
        groups = [partitions[key] for key in sorted(partitions)]
    else:
        groups = [rows]

    logger.debug("Aggregating %d rows into %d groups", len(rows), len(groups))

    output = []
    for part in groups:
        if condition is not None:
            values = [] if having_pos is None else [row[having_pos] for row in part]
            computed = compute_number(condition.func, values, len(part), having_pos is None)
            if not condition.matches(computed):
                continue

        result_row = []
        for col, pos in zip(columns, positions):
            if col.aggregate is None:
                result_row.append(part[0][pos] if part else "")
            elif pos is None:
                result_row.append(compute(col.aggregate, [], len(part), count_all=True))
            else:
                result_row.append(compute(col.aggregate, [row[pos] for row in part], len(part)))
        output.append(result_row)

    return output
