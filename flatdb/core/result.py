"""
Query results returned by the engine.
"""

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class QueryResult:
    """Result of a query execution"""
    columns: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)
    affected_rows: int = 0
    message: str = ""

    def as_dicts(self) -> List[Dict[str, str]]:
        """Rows keyed by column header"""
        return [dict(zip(self.columns, row)) for row in self.rows]

    def to_dict(self) -> Dict[str, object]:
        """JSON-friendly form used by the web console"""
        return {
            'columns': list(self.columns),
            'rows': [list(row) for row in self.rows],
            'affected_rows': self.affected_rows,
            'message': self.message,
        }

    def __len__(self) -> int:
        return len(self.rows)
