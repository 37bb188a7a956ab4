import sqlite3
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

PLAN_TYPES = ("duration", "checkin")


@dataclass
class Plan:
    """
    A template for memberships: a price plus either a duration in days
    ('duration' plans) or a check-in quota ('checkin' plans).
    """
    id: str
    name: str
    price: float
    plan_type: str = "duration"
    duration_days: Optional[int] = None
    check_in_limit: Optional[int] = None
    is_offer: bool = False
    description: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def is_checkin(self) -> bool:
        return self.plan_type == "checkin"

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Plan":
        return cls(
            id=row["id"],
            name=row["name"],
            price=row["price"],
            plan_type=row["plan_type"],
            duration_days=int(row["duration_days"]) if row["duration_days"] is not None else None,
            check_in_limit=row["check_in_limit"],
            is_offer=bool(row["is_offer"]),
            description=row["description"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
