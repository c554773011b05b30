from concurrent.futures import ThreadPoolExecutor
from datetime import date

from challenges import complete_profile
from community import perform_action
from daily import claim_daily_bonus
from errors import AlreadyClaimedToday, CapReached
from extensions import db
from models_activity import CommunityAction, DailyActivity
from models_points import OneTimeAward, PointsTransaction, UserTier

DAY = date(2026, 5, 1)


def _run_concurrently(app, fn, n):
    # Release the test's own connection before the workers start writing.
    db.session.remove()

    def worker(i):
        with app.app_context():
            try:
                fn(i)
                return "ok"
            except (CapReached, AlreadyClaimedToday) as e:
                return e.code

    with ThreadPoolExecutor(max_workers=8) as pool:
        return list(pool.map(worker, range(n)))


def test_concurrent_community_actions_respect_cap(app):
    outcomes = _run_concurrently(
        app, lambda i: perform_action("u-race", "reinforce_resistance", target_user_id=f"new-{i}", today=DAY), 12
    )

    assert outcomes.count("ok") == 3
    assert outcomes.count("cap_reached") == 9

    row = CommunityAction.query.filter_by(user_id="u-race", action_type="reinforce_resistance").one()
    assert row.daily_count == 3
    assert PointsTransaction.query.filter_by(user_id="u-race").count() == 3
    assert UserTier.query.filter_by(user_id="u-race").one().total_light == 75


def test_concurrent_daily_claims_pay_once(app):
    outcomes = _run_concurrently(app, lambda i: claim_daily_bonus("u-double", today=DAY), 6)

    assert outcomes.count("ok") == 1
    assert outcomes.count("already_claimed_today") == 5
    assert DailyActivity.query.filter_by(user_id="u-double").count() == 1
    assert PointsTransaction.query.filter_by(user_id="u-double", action_type="daily_defiance").count() == 1


def test_concurrent_profile_completion_pays_once(app):
    results = []

    def complete(i):
        results.append(complete_profile("u-armor-race", 100)["awarded"])

    outcomes = _run_concurrently(app, complete, 6)

    assert outcomes == ["ok"] * 6
    assert results.count(True) == 1
    assert PointsTransaction.query.filter_by(user_id="u-armor-race", action_type="forge_armor").count() == 1
    assert OneTimeAward.query.filter_by(user_id="u-armor-race").count() == 1
    # 50 for the profile plus the armor_forged achievement
    assert UserTier.query.filter_by(user_id="u-armor-race").one().total_light == 150
