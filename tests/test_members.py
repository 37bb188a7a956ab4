import pytest

from core.errors import ConflictError, NotFoundError, ValidationError
from services import member_service, membership_service, settings_service


def test_create_member_and_lookup(make_member, today):
    member = make_member(name="  Sara Ali ", phone="010 1234-5678", gender="Female")

    assert member["name"] == "Sara Ali"
    assert member["phone"] == "01012345678"
    assert member["gender"] == "female"

    found = member_service.get_member_by_id(member["id"], today=today)
    assert found["status"] == "inactive"
    assert found["current_membership"] is None
    assert found["membership_count"] == 0
    assert found["already_checked_in"] is False


def test_lookup_by_phone_with_country_code(make_member, today):
    member = make_member(phone="01012345678")

    assert member_service.get_member_by_phone("01012345678", today)["id"] == member["id"]
    assert member_service.get_member_by_phone("+2001012345678", today)["id"] == member["id"]
    assert member_service.get_member_by_phone("2001012345678", today)["id"] == member["id"]
    # trunk zero dropped after the country code
    assert member_service.get_member_by_phone("201012345678", today)["id"] == member["id"]
    assert member_service.get_member_by_phone("+201012345678", today)["id"] == member["id"]
    assert member_service.get_member_by_phone("0999", today) is None


def test_join_date_defaults_to_today(make_member):
    member = make_member(join_date=None)
    assert member["join_date"]


def test_duplicate_phone_is_rejected(make_member):
    make_member(phone="01011111111")
    with pytest.raises(ConflictError) as exc:
        make_member(phone="01011111111")
    assert exc.value.code == "PHONE_EXISTS"


@pytest.mark.parametrize("overrides, code", [
    ({"name": " "}, "NAME_REQUIRED"),
    ({"phone": ""}, "PHONE_REQUIRED"),
    ({"gender": "other"}, "INVALID_GENDER"),
    ({"join_date": "15/03/2024"}, "INVALID_DATE"),
])
def test_create_member_validation(make_member, overrides, code):
    with pytest.raises(ValidationError) as exc:
        make_member(**overrides)
    assert exc.value.code == code


def test_gender_must_be_allowed_by_settings(make_member):
    settings_service.update_settings({"allowed_genders": "female"})

    with pytest.raises(ValidationError) as exc:
        make_member(gender="male")
    assert exc.value.code == "GENDER_NOT_ALLOWED"
    assert make_member(gender="female")["gender"] == "female"


def test_member_status_filters(make_member, make_membership, today):
    active = make_member(name="Active")
    expired = make_member(name="Expired")
    never = make_member(name="Never")
    make_membership(member=active)
    make_membership(member=expired, start_date="2024-01-01", end_date="2024-01-31")

    def names(status):
        result = member_service.get_members(filters={"status": status}, today=today)
        assert result["total"] == len(result["members"])
        return [m["name"] for m in result["members"]]

    assert names("active") == ["Active"]
    assert names("expired") == ["Expired"]
    assert names("inactive") == ["Never"]
    assert len(names("all")) == 3

    listed = member_service.get_member_by_id(active["id"], today)
    assert listed["status"] == "active"
    assert listed["current_membership"]["plan_name"] == "Monthly"
    assert member_service.get_member_by_id(never["id"], today)["status"] == "inactive"


def test_unknown_member_status_filter(today):
    with pytest.raises(ValidationError) as exc:
        member_service.get_members(filters={"status": "frozen"}, today=today)
    assert exc.value.code == "INVALID_FILTER"


def test_get_members_search_and_pagination(make_member, today):
    for _ in range(12):
        make_member()
    make_member(name="Unique Person")

    assert member_service.get_members(filters={"query": "Unique"}, today=today)["total"] == 1

    page_two = member_service.get_members(page=2, today=today)
    assert page_two["total"] == 13
    assert page_two["total_pages"] == 2
    assert len(page_two["members"]) == 3


def test_update_member_keeps_missing_fields(make_member):
    member = make_member(email="old@example.com")
    updated = member_service.update_member(member["id"], {"name": "Renamed"})

    assert updated["name"] == "Renamed"
    assert updated["email"] == "old@example.com"
    assert updated["phone"] == member["phone"]


def test_update_missing_member():
    with pytest.raises(NotFoundError):
        member_service.update_member("nope", {"name": "X"})


def test_delete_member_cascades(make_membership, today):
    membership = make_membership()

    assert member_service.delete_member(membership["member_id"]) is True
    assert membership_service.get_memberships(today=today)["total"] == 0
    with pytest.raises(NotFoundError):
        member_service.delete_member(membership["member_id"])
