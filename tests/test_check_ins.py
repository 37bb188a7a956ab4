import datetime

import pytest

from core.errors import CheckInRefusedError, ConflictError, NotFoundError
from services import attendance_service, membership_service

MORNING = datetime.datetime(2024, 3, 15, 9, 30)


def at(day, hour=9):
    return datetime.datetime.combine(datetime.date.fromisoformat(day), datetime.time(hour, 0))


def test_check_in_with_paid_membership(make_membership):
    membership = make_membership()
    result = attendance_service.create_check_in(membership["member_id"], now=MORNING)

    assert result["membership_id"] == membership["id"]
    assert result["check_in_time"] == "2024-03-15 09:30:00"
    assert result["check_in_date"] == "2024-03-15"
    assert result["warnings"] == []
    assert attendance_service.get_today_check_in(membership["member_id"], "2024-03-15")["id"] == result["id"]


def test_one_check_in_per_day(make_membership):
    member_id = make_membership()["member_id"]
    attendance_service.create_check_in(member_id, now=MORNING)

    with pytest.raises(ConflictError) as exc:
        attendance_service.create_check_in(member_id, now=MORNING.replace(hour=18))
    assert exc.value.code == "ALREADY_CHECKED_IN"

    assert attendance_service.create_check_in(member_id, now=at("2024-03-16"))["check_in_date"] == "2024-03-16"


def test_check_in_without_membership(make_member):
    member = make_member()
    result = attendance_service.create_check_in(member["id"], now=MORNING)

    assert result["membership_id"] is None
    assert result["warnings"] == ["NO_ACTIVE_MEMBERSHIP"]


def test_unknown_member():
    with pytest.raises(NotFoundError):
        attendance_service.create_check_in("ghost", now=MORNING)


def test_payment_warnings(make_membership):
    partial = make_membership(payment_type="partial", amount_paid=100)
    unpaid = make_membership(payment_type="partial", amount_paid=0)

    assert attendance_service.create_check_in(partial["member_id"], now=MORNING)["warnings"] == ["PAYMENT_PARTIAL:200"]
    assert attendance_service.create_check_in(unpaid["member_id"], now=MORNING)["warnings"] == ["PAYMENT_UNPAID"]


def test_check_in_quota(make_membership, make_plan, today):
    plan = make_plan(name="Two visits", plan_type="checkin", duration_days=None, check_in_limit=2)
    membership = make_membership(plan=plan)
    member_id = membership["member_id"]

    first = attendance_service.create_check_in(member_id, now=MORNING)
    assert first["remaining_check_ins"] == 1
    assert first["warnings"] == ["LOW_CHECK_INS:1"]

    second = attendance_service.create_check_in(member_id, now=at("2024-03-16"))
    assert second["remaining_check_ins"] == 0

    with pytest.raises(CheckInRefusedError) as exc:
        attendance_service.create_check_in(member_id, now=at("2024-03-17"))
    assert exc.value.code == "NO_CHECK_INS_REMAINING"

    # an exhausted quota expires the membership
    assert membership_service.get_membership_by_id(membership["id"], today)["status"] == "expired"

    assert attendance_service.delete_check_in(second["id"]) is True
    assert membership_service.get_membership_by_id(membership["id"], today)["remaining_check_ins"] == 1


def test_check_in_listing_and_filters(make_member, make_membership, today):
    active = make_membership()
    expired = make_membership(start_date="2024-01-01", end_date="2024-01-31")
    walk_in = make_member(name="Walk In")

    for member_id in (active["member_id"], expired["member_id"], walk_in["id"]):
        attendance_service.create_check_in(member_id, now=MORNING)

    def total(**filters):
        return attendance_service.get_check_ins(filters=filters, today=today)["total"]

    assert total() == 3
    assert total(status="active") == 1
    assert total(status="expired") == 1
    assert total(status="none") == 1
    assert total(query="Walk") == 1
    assert total(date_from="2024-03-16") == 0

    listed = attendance_service.get_check_ins(filters={"status": "active"}, today=today)["check_ins"][0]
    assert listed["member_status"] == "active"
    assert listed["plan_name"] == "Monthly"


def test_check_in_stats(make_member, make_membership, today):
    regular = make_membership(start_date="2024-02-01", end_date="2024-12-31")["member_id"]
    for day in ("2024-02-28", "2024-03-05", "2024-03-12", "2024-03-15"):
        attendance_service.create_check_in(regular, now=at(day))
    attendance_service.create_check_in(make_member()["id"], now=MORNING)

    stats = attendance_service.get_check_in_stats(today)
    assert stats == {"today": 2, "this_week": 3, "this_month": 4, "active_members": 1}


def test_member_history_is_newest_first(make_membership):
    member_id = make_membership()["member_id"]
    for day in ("2024-03-15", "2024-03-16", "2024-03-17"):
        attendance_service.create_check_in(member_id, now=at(day))

    history = attendance_service.get_member_check_ins(member_id)
    assert [c["check_in_date"] for c in history] == ["2024-03-17", "2024-03-16", "2024-03-15"]


def test_recent_check_ins_page_size(make_member):
    for _ in range(7):
        attendance_service.create_check_in(make_member()["id"], now=MORNING)

    recent = attendance_service.get_recent_check_ins(today="2024-03-15")
    assert recent["total"] == 7
    assert len(recent["check_ins"]) == 5
    assert recent["total_pages"] == 2


def test_delete_missing_check_in():
    with pytest.raises(NotFoundError):
        attendance_service.delete_check_in("nothing")
