from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    """Who performed a mutation. Passed explicitly into every service call."""
    user_id: Optional[int]
    username: Optional[str] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=None, username="system")

    @property
    def display_name(self) -> str:
        if self.username:
            return self.username
        if self.user_id is not None:
            return f"user:{self.user_id}"
        return "system"
