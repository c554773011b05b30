from catalog import ACTION_EARLY_TIMELAPSE_PENALTY
from extensions import db
from models_points import PointsTransaction, UserTier
from points import award_light
from scripts.reconcile_tiers import reconcile


def test_reports_and_repairs_tier_mismatch(app):
    award_light("u-rec", "manual_grant", 1200)
    row = UserTier.query.filter_by(user_id="u-rec").one()
    row.current_tier = 1
    db.session.commit()

    dry = reconcile(fix=False)
    assert dry["fixed"] is False
    assert dry["tier_mismatches"] == [{"user_id": "u-rec", "current_tier": 1, "expected_tier": 3}]
    assert UserTier.query.filter_by(user_id="u-rec").one().current_tier == 1

    fixed = reconcile(fix=True)
    assert fixed["fixed"] is True
    assert UserTier.query.filter_by(user_id="u-rec").one().current_tier == 3
    assert reconcile()["tier_mismatches"] == []


def test_floored_deduction_reconciles_with_applied_amount(app):
    award_light("u-floor", "manual_grant", 10)
    result = award_light("u-floor", ACTION_EARLY_TIMELAPSE_PENALTY, -30)
    assert result.applied_amount == -10

    txn = PointsTransaction.query.filter_by(user_id="u-floor", action_type=ACTION_EARLY_TIMELAPSE_PENALTY).one()
    assert txn.points_amount == -30
    assert txn.meta["applied_amount"] == -10

    assert reconcile()["drift"] == []


def test_reports_total_that_disagrees_with_ledger(app):
    award_light("u-drift", "manual_grant", 40)
    row = UserTier.query.filter_by(user_id="u-drift").one()
    row.total_light = 55
    db.session.commit()

    assert reconcile()["drift"] == [{"user_id": "u-drift", "total_light": 55, "ledger_sum": 40}]
