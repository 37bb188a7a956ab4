import json
import sqlite3
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass
class Account:
    """A staff login. The password hash never leaves the auth service."""
    id: str
    username: str
    full_name: str
    email: Optional[str] = None
    is_admin: bool = False
    is_active: bool = True
    permissions: Dict[str, bool] = field(default_factory=dict)
    last_login: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Account":
        return cls(
            id=row["id"],
            username=row["username"],
            full_name=row["full_name"],
            email=row["email"],
            is_admin=bool(row["is_admin"]),
            is_active=bool(row["is_active"]),
            permissions=json.loads(row["permissions"] or "{}"),
            last_login=row["last_login"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
