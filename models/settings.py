import sqlite3
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

# Allowed values per field; fields missing here are free text
SETTING_CHOICES = {
    "language": ("ar", "en"),
    "date_format": ("DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD"),
    "allowed_genders": ("male", "female", "both"),
    "default_payment_method": ("cash", "card", "transfer", "e-wallet"),
    "backup_frequency": ("daily", "weekly", "monthly"),
}


@dataclass
class Settings:
    """Gym-wide preferences (single row)."""
    id: str = "1"
    gym_name: str = "FitDesk Gym"
    language: str = "en"
    currency: str = "EGP"
    date_format: str = "DD/MM/YYYY"
    allowed_genders: str = "both"
    default_payment_method: str = "cash"
    auto_backup: bool = True
    backup_frequency: str = "daily"
    backup_folder_path: Optional[str] = None
    last_backup_date: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Settings":
        data = {f.name: row[f.name] for f in fields(cls)}
        data["auto_backup"] = bool(data["auto_backup"])
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
