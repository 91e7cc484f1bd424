import pytest

from pos_backend.app.errors import CapExceeded
from pos_backend.app.tiers import (
    DEFAULT_CAPS,
    AdmissionResult,
    admission_snapshot,
    can_add_contact,
    can_add_team_member,
    can_create_property,
    can_invite_viewer,
    get_account_limits,
    lock_account_admissions,
)


def test_limits_fall_back_to_defaults_without_products(db, conn):
    account_id = db.add_account()

    assert get_account_limits(conn, account_id) == DEFAULT_CAPS
    assert DEFAULT_CAPS.max_properties == 3
    assert DEFAULT_CAPS.max_contacts == 50
    assert DEFAULT_CAPS.max_viewers == 5
    assert DEFAULT_CAPS.max_team_members == 10


def test_limits_use_active_free_product_without_subscription(db, conn):
    account_id = db.add_account()
    db.add_product("Free", max_properties=1, max_contacts=10, max_viewers=1, max_team_members=2)

    limits = get_account_limits(conn, account_id)

    assert limits.max_properties == 1
    assert limits.max_team_members == 2


def test_inactive_free_product_is_ignored(db, conn):
    account_id = db.add_account()
    db.add_product("free", is_active=False, max_properties=1)

    assert get_account_limits(conn, account_id) == DEFAULT_CAPS


def test_highest_priced_active_subscription_wins(db, conn):
    account_id = db.add_account()
    basic = db.add_product("Basic", price="10", max_properties=5)
    pro = db.add_product("Pro", price="50", max_properties=25)
    legacy = db.add_product("Legacy", price="99", max_properties=99)
    db.add_subscription(account_id, basic)
    db.add_subscription(account_id, pro)
    db.add_subscription(account_id, legacy, status="canceled")

    assert get_account_limits(conn, account_id).max_properties == 25


def test_equal_price_tie_breaks_on_newest_product(db, conn):
    account_id = db.add_account()
    first = db.add_product("Team A", price="20", max_properties=7)
    second = db.add_product("Team B", price="20", max_properties=8)
    db.add_subscription(account_id, first)
    db.add_subscription(account_id, second)

    assert get_account_limits(conn, account_id).max_properties == 8


def test_property_admission_denied_at_cap(db, conn):
    account_id = db.add_account()
    for _ in range(3):
        db.add_property(account_id)

    result = can_create_property(conn, account_id)

    assert result == AdmissionResult(current=3, max=3)
    assert not result.allowed
    with pytest.raises(CapExceeded) as excinfo:
        result.require("Property")
    assert "3/3" in excinfo.value.message
    assert excinfo.value.status_code == 403
    assert excinfo.value.payload["current"] == 3


def test_property_admission_allowed_below_cap(db, conn):
    account_id = db.add_account()
    db.add_property(account_id)

    result = can_create_property(conn, account_id)

    assert result.allowed
    assert result.require("Property") is result
    assert result.to_dict() == {"allowed": True, "current": 1, "max": 3}


def test_zero_cap_denies_everything(db, conn):
    account_id = db.add_account()
    db.add_product("free", max_contacts=0)

    result = can_add_contact(conn, account_id)

    assert result.current == 0
    assert not result.allowed


def test_viewer_and_team_counts_are_per_property(db, conn):
    account_id = db.add_account()
    property_id = db.add_property(account_id)
    other_property = db.add_property(account_id)
    for index in range(5):
        user_id = db.add_user(f"viewer{index}@example.com")
        db.add_member(property_id, user_id, "viewer")
    agent_id = db.add_user("agent@example.com")
    db.add_member(property_id, agent_id, "agent")
    db.add_member(other_property, agent_id, "viewer")

    viewers = can_invite_viewer(conn, account_id, property_id)
    team = can_add_team_member(conn, account_id, property_id)

    assert (viewers.current, viewers.max, viewers.allowed) == (5, 5, False)
    assert (team.current, team.max, team.allowed) == (6, 10, True)
    assert can_invite_viewer(conn, account_id, other_property).current == 1


def test_lock_account_admissions_takes_advisory_lock(db, conn):
    lock_account_admissions(conn, 42)

    assert db.advisory_locks == [(7301, 42)]


def test_admission_snapshot_includes_property_checks_when_requested(db, conn):
    account_id = db.add_account()
    property_id = db.add_property(account_id)
    db.add_contact(account_id)

    without_property = admission_snapshot(conn, account_id)
    with_property = admission_snapshot(conn, account_id, property_id)

    assert set(without_property) == {"limits", "properties", "contacts"}
    assert without_property["limits"]["maxProperties"] == 3
    assert without_property["contacts"] == {"allowed": True, "current": 1, "max": 50}
    assert with_property["viewers"]["current"] == 0
    assert with_property["teamMembers"]["max"] == 10
