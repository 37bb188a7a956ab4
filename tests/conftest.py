import datetime
import itertools

import pytest

import config
from core.database import init_db
from services import member_service, membership_service, plan_service

# Friday; the week starts on Monday 2024-03-11
TODAY = datetime.date(2024, 3, 15)


@pytest.fixture(autouse=True)
def test_db(tmp_path, monkeypatch):
    """
    Points the services at a fresh, fully migrated SQLite file.
    """
    monkeypatch.setattr(config, "BASE_FOLDER", tmp_path)
    monkeypatch.setattr(config, "DB_FILE", tmp_path / "test.db")
    monkeypatch.setattr(config, "LOG_FILE", tmp_path / "test.log")
    monkeypatch.setattr(config, "CONFIG_FILE", tmp_path / ".fitdesk_config")
    init_db()
    return config.DB_FILE


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def make_member():
    counter = itertools.count(1)

    def factory(**overrides):
        n = next(counter)
        data = {
            "name": f"Member {n}",
            "phone": f"0100000{n:04d}",
            "gender": "male",
            "join_date": "2024-01-01",
        }
        data.update(overrides)
        return member_service.create_member(data)

    return factory


@pytest.fixture
def make_plan():
    def factory(**overrides):
        data = {"name": "Monthly", "price": 300, "duration_days": 30}
        data.update(overrides)
        return plan_service.create_plan(data)

    return factory


@pytest.fixture
def make_membership(make_member, make_plan):
    """
    Sells a membership; by default a fully paid 30-day plan starting on TODAY.
    """
    def factory(member=None, plan=None, today=TODAY, **overrides):
        member = member or make_member()
        plan = plan or make_plan()
        data = {"member_id": member["id"], "plan_id": plan["id"], "start_date": today.isoformat()}
        data.update(overrides)
        return membership_service.create_membership(data, today=today)

    return factory
