"""Achievement catalog and unlock rules.

Rules only decide *whether* an achievement is earned by an award. Recording the
unlock and paying its reward is done by the award engine (points.py), which
pays rewards as non-triggering awards so an unlock can never cause another.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

from flask import Blueprint, jsonify

from auth import require_user
from catalog import ACTION_KNOWLEDGE_SHARED, ACTION_PROFILE_COMPLETED, NON_TRIGGERING_ACTIONS
from extensions import db
from models_achievements import Achievement, UserAchievement


achievements_api = Blueprint("achievements_api", __name__)


class RequirementType(str, Enum):
    LOGIN_STREAK = "login_streak"
    TIPS_SHARED = "tips_shared"
    PROFILE_COMPLETION = "profile_completion"


def _as_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _login_streak(achievement: Achievement, action_type: str, metadata: dict) -> bool:
    return _as_int(metadata.get("streak")) >= int(achievement.requirement_value or 0)


def _tips_shared(achievement: Achievement, action_type: str, metadata: dict) -> bool:
    return action_type == ACTION_KNOWLEDGE_SHARED


def _profile_completion(achievement: Achievement, action_type: str, metadata: dict) -> bool:
    return (
        action_type == ACTION_PROFILE_COMPLETED
        and _as_int(metadata.get("completion_percentage")) >= int(achievement.requirement_value or 0)
    )


REQUIREMENT_CHECKS: dict[RequirementType, Callable[[Achievement, str, dict], bool]] = {
    RequirementType.LOGIN_STREAK: _login_streak,
    RequirementType.TIPS_SHARED: _tips_shared,
    RequirementType.PROFILE_COMPLETION: _profile_completion,
}


def requirement_met(achievement: Achievement, action_type: str, metadata: dict | None) -> bool:
    try:
        kind = RequirementType(achievement.requirement_type)
    except ValueError:
        # Catalog rows with a requirement we do not know how to check never unlock.
        return False
    return bool(REQUIREMENT_CHECKS[kind](achievement, action_type, metadata or {}))


def unlocked_ids(user_id: str) -> set[str]:
    rows = db.session.query(UserAchievement.achievement_id).filter(UserAchievement.user_id == user_id).all()
    return {r[0] for r in rows}


def find_unlockable(user_id: str, action_type: str, metadata: dict | None) -> list[Achievement]:
    """Achievements the user does not have yet whose requirement this award meets."""
    if action_type in NON_TRIGGERING_ACTIONS:
        return []

    done = unlocked_ids(user_id)
    q = Achievement.query
    if done:
        q = q.filter(Achievement.id.notin_(done))
    candidates = q.order_by(Achievement.requirement_value.asc(), Achievement.id.asc()).all()
    return [a for a in candidates if requirement_met(a, action_type, metadata)]


DEFAULT_ACHIEVEMENTS = [
    {
        "id": "first_defiance",
        "name": "First Defiance",
        "description": "Claim your first daily login bonus.",
        "category": "consistency",
        "requirement_type": RequirementType.LOGIN_STREAK.value,
        "requirement_value": 1,
        "points_reward": 25,
        "rarity": "common",
    },
    {
        "id": "streak_3",
        "name": "Kindling",
        "description": "Log in three days in a row.",
        "category": "consistency",
        "requirement_type": RequirementType.LOGIN_STREAK.value,
        "requirement_value": 3,
        "points_reward": 50,
        "rarity": "common",
    },
    {
        "id": "streak_7",
        "name": "Week of Resistance",
        "description": "Log in seven days in a row.",
        "category": "consistency",
        "requirement_type": RequirementType.LOGIN_STREAK.value,
        "requirement_value": 7,
        "points_reward": 100,
        "rarity": "rare",
    },
    {
        "id": "streak_30",
        "name": "Unbroken",
        "description": "Log in thirty days in a row.",
        "category": "consistency",
        "requirement_type": RequirementType.LOGIN_STREAK.value,
        "requirement_value": 30,
        "points_reward": 500,
        "rarity": "epic",
    },
    {
        "id": "first_knowledge",
        "name": "Keeper of Secrets",
        "description": "Share a relief strategy with the community.",
        "category": "community",
        "requirement_type": RequirementType.TIPS_SHARED.value,
        "requirement_value": 1,
        "points_reward": 75,
        "rarity": "common",
    },
    {
        "id": "armor_forged",
        "name": "Armor Forged",
        "description": "Complete your profile.",
        "category": "profile",
        "requirement_type": RequirementType.PROFILE_COMPLETION.value,
        "requirement_value": 100,
        "points_reward": 100,
        "rarity": "rare",
    },
]


def seed_achievements() -> int:
    """Insert default catalog rows that are missing. Existing rows are left alone."""
    existing = {r[0] for r in db.session.query(Achievement.id).all()}
    added = 0
    for item in DEFAULT_ACHIEVEMENTS:
        if item["id"] in existing:
            continue
        db.session.add(Achievement(**item))
        added += 1
    if added:
        db.session.commit()
    return added


@achievements_api.get("/api/achievements")
def list_achievements():
    user_id = require_user()

    unlocked = {
        ua.achievement_id: ua
        for ua in UserAchievement.query.filter_by(user_id=user_id).all()
    }
    achievements = Achievement.query.order_by(Achievement.category.asc(), Achievement.requirement_value.asc()).all()

    by_category: dict[str, list] = {}
    for a in achievements:
        ua = unlocked.get(a.id)
        item = {
            **a.to_dict(),
            "unlocked": ua is not None,
            "unlocked_at": ua.unlocked_at.isoformat() if ua else None,
        }
        by_category.setdefault(a.category, []).append(item)

    return jsonify(
        {
            "success": True,
            "categories": by_category,
            "unlocked_count": len(unlocked),
            "total_count": len(achievements),
        }
    )
