from datetime import date, timedelta

import pytest
from sqlalchemy.exc import OperationalError

import points
from catalog import ACTION_DAILY_LOGIN
from daily import claim_daily_bonus, get_streak_status
from errors import AlreadyClaimedToday, StoreFailure, Unauthenticated
from models_activity import DailyActivity, Profile
from models_points import PointsTransaction

DAY = date(2026, 3, 2)


def _daily_transactions(user_id):
    return (
        PointsTransaction.query.filter_by(user_id=user_id, action_type=ACTION_DAILY_LOGIN)
        .order_by(PointsTransaction.created_at.asc())
        .all()
    )


def test_first_claim_starts_streak(app):
    out = claim_daily_bonus("u-daily", today=DAY)
    assert out["current_streak"] == 1
    assert out["points_earned"] == 10
    assert out["streak_bonus"] == 0
    assert out["is_new_record"] is True

    # first_defiance unlocks on the first claim
    assert [a["id"] for a in out["award"]["unlocked_achievements"]] == ["first_defiance"]
    assert out["award"]["new_total"] == 35


def test_second_claim_same_day_is_a_no_op(app):
    claim_daily_bonus("u-daily", today=DAY)
    with pytest.raises(AlreadyClaimedToday):
        claim_daily_bonus("u-daily", today=DAY)

    assert DailyActivity.query.filter_by(user_id="u-daily").count() == 1
    assert len(_daily_transactions("u-daily")) == 1


def test_bonus_uses_streak_before_today(app):
    for offset in range(3):
        claim_daily_bonus("u-streak", today=DAY + timedelta(days=offset))
    assert Profile.query.filter_by(user_id="u-streak").one().streak_count == 3

    out = claim_daily_bonus("u-streak", today=DAY + timedelta(days=3))
    assert out["current_streak"] == 4
    assert out["points_earned"] == 25
    assert [t.points_amount for t in _daily_transactions("u-streak")] == [10, 15, 20, 25]


def test_gap_resets_streak_and_keeps_longest(app):
    for offset in range(3):
        claim_daily_bonus("u-gap", today=DAY + timedelta(days=offset))

    out = claim_daily_bonus("u-gap", today=DAY + timedelta(days=5))
    assert out["current_streak"] == 1
    assert out["longest_streak"] == 3
    assert out["points_earned"] == 10
    assert out["is_new_record"] is False


def test_status_reports_broken_streak(app):
    claim_daily_bonus("u-status", today=DAY)

    same_day = get_streak_status("u-status", today=DAY)
    assert same_day["today_completed"] is True
    assert same_day["can_claim"] is False
    assert same_day["current_streak"] == 1

    next_day = get_streak_status("u-status", today=DAY + timedelta(days=1))
    assert next_day["can_claim"] is True
    assert next_day["current_streak"] == 1

    later = get_streak_status("u-status", today=DAY + timedelta(days=3))
    assert later["current_streak"] == 0
    assert later["longest_streak"] == 1


def test_claim_requires_identity(app):
    with pytest.raises(Unauthenticated):
        claim_daily_bonus("", today=DAY)


def test_store_failure_mid_claim_leaves_nothing_behind(app, monkeypatch):
    claim_daily_bonus("u-broken", today=DAY)

    def broken(*args, **kwargs):
        raise OperationalError("UPDATE user_tiers", {}, Exception("database is locked"))

    monkeypatch.setattr(points, "_increment_total", broken)
    with pytest.raises(StoreFailure):
        claim_daily_bonus("u-broken", today=DAY + timedelta(days=1))

    assert DailyActivity.query.filter_by(user_id="u-broken").count() == 1
    profile = Profile.query.filter_by(user_id="u-broken").one()
    assert profile.streak_count == 1
    assert profile.last_active_date == DAY
    assert len(_daily_transactions("u-broken")) == 1

    monkeypatch.undo()
    out = claim_daily_bonus("u-broken", today=DAY + timedelta(days=1))
    assert out["current_streak"] == 2
    assert out["points_earned"] == 15
    assert DailyActivity.query.filter_by(user_id="u-broken").count() == 2


def test_store_failure_on_first_claim_creates_no_rows(app, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("UPDATE user_tiers", {}, Exception("database is locked"))

    monkeypatch.setattr(points, "_increment_total", broken)
    with pytest.raises(StoreFailure):
        claim_daily_bonus("u-first-fail", today=DAY)

    assert DailyActivity.query.filter_by(user_id="u-first-fail").count() == 0
    assert Profile.query.filter_by(user_id="u-first-fail").count() == 0
    assert PointsTransaction.query.filter_by(user_id="u-first-fail").count() == 0
