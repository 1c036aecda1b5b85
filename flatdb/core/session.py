"""
Sessions - who is running statements and what they may do

The engine does not authenticate anyone. A session only answers
whether statements may run at all, whether they may change data,
and which database is selected.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol


class SessionProvider(Protocol):
    """What the engine needs to know about the caller"""

    def can_modify_data(self) -> bool: ...

    def is_logged_in(self) -> bool: ...

    def current_database(self) -> Optional[str]: ...


class Role(Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, value: str) -> 'Role':
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role '{value}', expected one of: "
                             f"{', '.join(role.value for role in cls)}")


@dataclass
class UserSession:
    """
    A logged-in user with a role.

    ADMIN and EDITOR may change data; VIEWER may only read.
    """
    username: str = ""
    role: Role = Role.VIEWER
    database: Optional[str] = None
    logged_in: bool = False

    @classmethod
    def login(cls, username: str, role: Role = Role.VIEWER,
              database: Optional[str] = None) -> 'UserSession':
        if not username or not username.strip():
            raise ValueError("Username is required")
        return cls(username=username.strip(), role=role, database=database, logged_in=True)

    def logout(self) -> None:
        self.logged_in = False
        self.database = None

    def can_modify_data(self) -> bool:
        return self.logged_in and self.role in (Role.ADMIN, Role.EDITOR)

    def is_logged_in(self) -> bool:
        return self.logged_in

    def current_database(self) -> Optional[str]:
        return self.database

    def select_database(self, name: Optional[str]) -> None:
        self.database = name
