import logging
from typing import Any, Dict
from core.database import get_conn
from core.errors import ValidationError
from core.utils import timestamp
from models.settings import SETTING_CHOICES, Settings

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "gym_name", "language", "currency", "date_format", "allowed_genders",
    "default_payment_method", "auto_backup", "backup_frequency",
    "backup_folder_path", "last_backup_date",
)


def get_settings() -> Settings:
    """Returns the gym settings, or the defaults if the row is missing."""
    with get_conn() as conn:
        row = conn.execute("SELECT * FROM settings WHERE id = '1'").fetchone()
    return Settings.from_row(row) if row else Settings()


def update_settings(changes: Dict[str, Any]) -> Settings:
    """
    Partially updates the settings row.

    Raises:
        ValidationError: INVALID_SETTING for unknown fields or values outside the allowed set.
    """
    values = {}
    for key, value in (changes or {}).items():
        if key not in EDITABLE_FIELDS:
            raise ValidationError("INVALID_SETTING", f"Unknown setting: {key}")
        if key in SETTING_CHOICES and value not in SETTING_CHOICES[key]:
            raise ValidationError("INVALID_SETTING", f"Invalid value for {key}: {value!r}")
        if key == "auto_backup":
            value = 1 if value else 0
        if key == "gym_name" and not str(value or "").strip():
            raise ValidationError("INVALID_SETTING", "Gym name cannot be empty")
        values[key] = value

    if values:
        assignments = ", ".join(f"{key} = ?" for key in values)
        with get_conn() as conn:
            conn.execute("INSERT OR IGNORE INTO settings (id) VALUES ('1')")
            conn.execute(
                f"UPDATE settings SET {assignments}, updated_at = ? WHERE id = '1'",
                (*values.values(), timestamp()),
            )
        logger.info("Settings updated: %s", ", ".join(values))

    return get_settings()
