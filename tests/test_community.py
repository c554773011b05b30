from datetime import date

import pytest

from community import can_perform_action, perform_action, remaining_actions, support_user, todays_actions
from errors import CapReached, InvalidAction
from models_achievements import UserAchievement
from models_activity import CommunityAction
from models_points import PointsTransaction, UserTier

DAY = date(2026, 3, 2)


def test_sixth_support_is_refused(app):
    for i in range(5):
        out = perform_action("u-comm", "beacon_hope", target_user_id=f"friend-{i}", today=DAY)
        assert out["daily_count"] == i + 1
        assert out["points_earned"] == 10

    with pytest.raises(CapReached):
        perform_action("u-comm", "beacon_hope", target_user_id="friend-5", today=DAY)

    row = CommunityAction.query.filter_by(user_id="u-comm", action_type="beacon_hope").one()
    assert row.daily_count == 5
    assert row.light_earned == 50
    assert row.target_user_id == "friend-0"
    assert PointsTransaction.query.filter_by(user_id="u-comm").count() == 5
    assert UserTier.query.filter_by(user_id="u-comm").one().total_light == 50


def test_cap_resets_next_day(app):
    for _ in range(3):
        perform_action("u-welcome", "reinforce_resistance", today=DAY)
    assert not can_perform_action("u-welcome", "reinforce_resistance", today=DAY)

    out = perform_action("u-welcome", "reinforce_resistance", today=date(2026, 3, 3))
    assert out["daily_count"] == 1
    assert out["remaining"] == 2


def test_unknown_action_is_rejected_without_writes(app):
    with pytest.raises(InvalidAction):
        perform_action("u-comm", "steal_light", today=DAY)
    assert CommunityAction.query.count() == 0
    assert PointsTransaction.query.count() == 0


def test_award_metadata_carries_target_and_count(app):
    out = perform_action(
        "u-meta", "silence_whispers", target_content_id="post-9", metadata={"reaction_type": "hug"}, today=DAY
    )
    txn = PointsTransaction.query.filter_by(id=out["award"]["transaction_id"]).one()
    assert txn.source_type == "community_action"
    assert txn.source_id == "post-9"
    assert txn.meta == {"target_user_id": None, "daily_count": 1, "client": {"reaction_type": "hug"}}


def test_caller_metadata_cannot_unlock_achievements(app):
    out = perform_action("u-sneaky", "beacon_hope", metadata={"streak": 30, "completion_percentage": 100}, today=DAY)
    assert out["award"]["unlocked_achievements"] == []
    assert out["award"]["new_total"] == 10
    assert UserAchievement.query.filter_by(user_id="u-sneaky").count() == 0


def test_todays_actions_lists_every_catalog_action(app):
    perform_action("u-list", "expose_deceit", today=DAY)
    actions = todays_actions("u-list", today=DAY)
    assert set(actions) == {"beacon_hope", "silence_whispers", "reinforce_resistance", "expose_deceit"}
    assert actions["expose_deceit"]["daily_count"] == 1
    assert actions["expose_deceit"]["remaining"] == 9
    assert remaining_actions("u-list", "beacon_hope", today=DAY) == 5
    assert remaining_actions("u-list", "steal_light", today=DAY) == 0


def test_support_wrapper(app):
    out = support_user("u-wrap", "friend-1")
    assert out["action_type"] == "beacon_hope"
    assert out["award"]["new_total"] == 10
