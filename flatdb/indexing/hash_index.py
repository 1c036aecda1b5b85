"""
Secondary Index - value -> row positions map for one column

Row positions shift when rows are deleted, so the owning table calls
rebuild() after every delete instead of patching positions in place.
"""

from typing import Dict, FrozenSet, List, Sequence, Set


class SecondaryIndex:
    """Hash index over the text values of one column"""

    def __init__(self, column_name: str, position: int):
        self.column_name = column_name
        self.position = position
        self.entries: Dict[str, Set[int]] = {}

    def add(self, row: Sequence[str], row_pos: int) -> None:
        self.entries.setdefault(row[self.position], set()).add(row_pos)

    def remove(self, row: Sequence[str], row_pos: int) -> None:
        value = row[self.position]
        positions = self.entries.get(value)
        if positions is None:
            return
        positions.discard(row_pos)
        if not positions:
            del self.entries[value]

    def rebuild(self, rows: List[List[str]]) -> None:
        """Discard all entries and index rows from scratch"""
        self.entries = {}
        for row_pos, row in enumerate(rows):
            self.add(row, row_pos)

    def positions(self, value: str) -> FrozenSet[int]:
        return frozenset(self.entries.get(value, ()))

    def snapshot(self) -> Dict[str, FrozenSet[int]]:
        """Immutable copy of the index contents"""
        return {value: frozenset(positions) for value, positions in self.entries.items()}

    def __len__(self) -> int:
        return len(self.entries)

    def __repr__(self) -> str:
        return f"SecondaryIndex({self.column_name!r}, values={len(self.entries)})"
