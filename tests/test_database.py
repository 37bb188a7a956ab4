import sqlite3

import pytest

import config
from core import database
from core.migrations import MIGRATIONS


def _tables():
    with database.get_conn() as conn:
        return {row["name"] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}


def test_init_db_applies_every_migration_once():
    assert database.init_db() == 0
    assert all(applied for _, _, applied in database.migration_status())
    assert {"members", "memberships", "membership_payments", "check_ins", "notification_log"} <= _tables()


def test_settings_row_is_seeded():
    with database.get_conn() as conn:
        row = conn.execute("SELECT gym_name, allowed_genders FROM settings WHERE id = '1'").fetchone()
    assert row["allowed_genders"] == "both"


def test_rollback_last_migration_and_reapply():
    assert database.rollback_last_migration() is True
    assert "notification_log" not in _tables()
    assert database.migration_status()[-1] == (MIGRATIONS[-1][0], MIGRATIONS[-1][1], False)

    assert database.init_db() == 1
    assert "notification_log" in _tables()


def test_get_conn_rolls_back_on_error():
    with pytest.raises(RuntimeError):
        with database.get_conn() as conn:
            conn.execute("UPDATE settings SET gym_name = 'Changed' WHERE id = '1'")
            raise RuntimeError("boom")

    with database.get_conn() as conn:
        assert conn.execute("SELECT gym_name FROM settings").fetchone()[0] != "Changed"


def test_foreign_keys_are_enforced():
    with pytest.raises(sqlite3.IntegrityError):
        with database.get_conn() as conn:
            conn.execute(
                "INSERT INTO memberships (id, member_id, plan_id, start_date, end_date) "
                "VALUES ('x', 'missing', 'missing', '2024-01-01', '2024-01-31')"
            )


def test_connect_requires_database_path(monkeypatch):
    monkeypatch.setattr(config, "DB_FILE", None)
    with pytest.raises(RuntimeError):
        with database.get_conn():
            pass
