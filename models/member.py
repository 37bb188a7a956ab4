import sqlite3
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass
class Member:
    """
    Represents a single gym member's profile.
    Status is derived from memberships and is never stored here.
    """
    id: str
    name: str
    phone: str
    gender: str  # 'male' or 'female'
    join_date: str
    country_code: str = "+20"
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Member":
        return cls(
            id=row["id"],
            name=row["name"],
            phone=row["phone"],
            gender=row["gender"],
            join_date=row["join_date"],
            country_code=row["country_code"],
            email=row["email"],
            address=row["address"],
            notes=row["notes"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
