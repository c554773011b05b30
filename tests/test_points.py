import pytest
from sqlalchemy.exc import OperationalError

import points
from catalog import ACTION_EARLY_TIMELAPSE_PENALTY
from errors import InvalidAction, StoreFailure, Unauthenticated
from models_notifications import Notification
from models_points import PointsTransaction, UserTier
from points import award_light, get_user_tier


def test_first_award_creates_aggregate(app):
    assert get_user_tier("u-new")["total_light"] == 0

    result = award_light("u-new", "manual_grant", 300, source_type="admin")
    assert result.new_total == 300
    assert result.new_tier == 2
    assert result.tier_changed is True

    row = UserTier.query.filter_by(user_id="u-new").one()
    assert row.total_light == 300
    assert row.current_tier == 2


def test_penalty_demotes_and_keeps_history(app):
    first = award_light("u-pen", "manual_grant", 3050)
    assert first.new_tier == 4

    result = award_light("u-pen", ACTION_EARLY_TIMELAPSE_PENALTY, -100, source_type="photo_challenge")
    assert result.new_total == 2950
    assert result.new_tier == 3
    assert result.previous_tier == 4
    assert result.applied_amount == -100

    amounts = [t.points_amount for t in PointsTransaction.query.filter_by(user_id="u-pen").all()]
    assert sorted(amounts) == [-100, 3050]
    penalty = PointsTransaction.query.filter_by(id=result.transaction_id).one()
    assert "applied_amount" not in penalty.meta
    assert UserTier.query.filter_by(user_id="u-pen").one().current_tier == 3


def test_total_never_goes_negative(app):
    award_light("u-floor", "manual_grant", 20)
    result = award_light("u-floor", ACTION_EARLY_TIMELAPSE_PENALTY, -50)
    assert result.new_total == 0
    assert result.new_tier == 1


def test_award_notifies_after_commit(app):
    award_light("u-note", "forge_alliance", 20)
    note = Notification.query.filter_by(user_id="u-note").one()
    assert note.title == "Light Earned!"
    assert note.message == "+20 Light for Forging an Alliance"


def test_award_validation(app):
    with pytest.raises(Unauthenticated):
        award_light(None, "manual_grant", 10)
    with pytest.raises(InvalidAction):
        award_light("u-val", "", 10)
    with pytest.raises(InvalidAction):
        award_light("u-val", "manual_grant", 1.5)
    assert PointsTransaction.query.count() == 0


def test_store_failure_rolls_back(app, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("UPDATE user_tiers", {}, Exception("database is locked"))

    monkeypatch.setattr(points, "_increment_total", broken)
    with pytest.raises(StoreFailure):
        award_light("u-fail", "manual_grant", 10)

    assert PointsTransaction.query.filter_by(user_id="u-fail").count() == 0
    assert UserTier.query.filter_by(user_id="u-fail").count() == 0
