"""
Schema Module - Defines column definitions and constraints

Supports:
- Column definitions with types
- PRIMARY KEY constraint (implies NOT NULL, enforced unique)
- NOT NULL constraint
- Foreign key references (metadata only, not enforced)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .types import ColumnType, TypeValidator
from ..errors import SchemaError


@dataclass(frozen=True)
class ColumnDef:
    """Represents a column in a table. Immutable once the table exists."""
    name: str
    col_type: ColumnType
    nullable: bool = True
    primary_key: bool = False
    is_foreign_key: bool = False
    reference_table: Optional[str] = None
    reference_column: Optional[str] = None

    @classmethod
    def build(cls, name: str, type_str: str, nullable: bool = True,
              primary_key: bool = False, reference_table: Optional[str] = None,
              reference_column: Optional[str] = None) -> 'ColumnDef':
        """Create a column from a SQL type name"""
        return cls(
            name=name,
            col_type=TypeValidator.parse_type(type_str),
            # Primary keys are implicitly NOT NULL
            nullable=nullable and not primary_key,
            primary_key=primary_key,
            is_foreign_key=reference_table is not None,
            reference_table=reference_table,
            reference_column=reference_column,
        )

    def describe(self) -> Dict[str, str]:
        """Row for DESCRIBE output"""
        reference = ""
        if self.is_foreign_key:
            reference = f"{self.reference_table}({self.reference_column})"
        return {
            'column_name': self.name,
            'type': str(self.col_type),
            'nullable': 'YES' if self.nullable else 'NO',
            'key': 'PRI' if self.primary_key else ('FK' if self.is_foreign_key else ''),
            'references': reference,
        }


@dataclass
class ColumnLookup:
    """Case-insensitive name -> position map for a column list"""
    columns: Sequence[ColumnDef]
    _positions: Dict[str, int] = field(init=False, repr=False)

    def __post_init__(self):
        self._positions = {}
        for idx, col in enumerate(self.columns):
            key = col.name.lower()
            if key in self._positions:
                raise SchemaError(f"Column '{col.name}' already exists")
            self._positions[key] = idx

    def find(self, name: str) -> Optional[int]:
        return self._positions.get(name.lower())

    def names(self) -> List[str]:
        return [col.name for col in self.columns]
