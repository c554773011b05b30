"""Earnable actions.

Caps and payouts live in code, not in the database. Changing them is a deploy.
"""

from __future__ import annotations


# Action type tags
ACTION_DAILY_LOGIN = "daily_defiance"
ACTION_PHOTO_CAPTURE = "daily_photo_capture"
ACTION_KNOWLEDGE_SHARED = "forbidden_knowledge"
ACTION_ALLIANCE_FORMED = "forge_alliance"
ACTION_PROFILE_COMPLETED = "forge_armor"
ACTION_ACHIEVEMENT_UNLOCK = "achievement_unlock"
ACTION_EARLY_TIMELAPSE_PENALTY = "early_timelapse_penalty"

ACTION_SUPPORT = "beacon_hope"
ACTION_VENT_REACTION = "silence_whispers"
ACTION_WELCOME = "reinforce_resistance"
ACTION_RESEARCH_UPVOTE = "expose_deceit"


# Capped community actions: at most max_daily per user per calendar day.
COMMUNITY_ACTIONS: dict[str, dict] = {
    ACTION_SUPPORT: {
        "max_daily": 5,
        "light_per_action": 10,
        "description": "Send support to users in symptom flare",
    },
    ACTION_VENT_REACTION: {
        "max_daily": 10,
        "light_per_action": 5,
        "description": "React to posts in vent channel",
    },
    ACTION_WELCOME: {
        "max_daily": 3,
        "light_per_action": 25,
        "description": "Welcome new members (first 3 welcomes)",
    },
    ACTION_RESEARCH_UPVOTE: {
        "max_daily": 10,
        "light_per_action": 5,
        "description": "Upvote helpful research links",
    },
}

# Uncapped activities with a fixed payout.
FIXED_REWARDS: dict[str, int] = {
    ACTION_KNOWLEDGE_SHARED: 150,
    ACTION_ALLIANCE_FORMED: 20,
    ACTION_PROFILE_COMPLETED: 50,
}

# Daily login: base + min(prior streak * per_day, cap)
DAILY_BASE_LIGHT = 10
DAILY_STREAK_BONUS_PER_DAY = 5
DAILY_STREAK_BONUS_CAP = 30

# Photo challenge capture: base, first-photo bonus, min(streak * per_day, cap) from day 2
PHOTO_BASE_LIGHT = 15
PHOTO_FIRST_BONUS = 10
PHOTO_STREAK_BONUS_PER_DAY = 2
PHOTO_STREAK_BONUS_CAP = 20
# Light credited to the challenge's own progress counter per photo
PHOTO_CHALLENGE_POINTS = 10

# Percent of a challenge's earned points forfeited on early time-lapse generation
EARLY_TIMELAPSE_PENALTY_PERCENT = 20

# Awards of these types are never evaluated for achievement unlocks.
NON_TRIGGERING_ACTIONS = frozenset({
    ACTION_ACHIEVEMENT_UNLOCK,
    ACTION_EARLY_TIMELAPSE_PENALTY,
})

ACTION_TITLES: dict[str, str] = {
    ACTION_DAILY_LOGIN: "Daily Login",
    ACTION_KNOWLEDGE_SHARED: "Sharing Knowledge",
    ACTION_SUPPORT: "Supporting Others",
    ACTION_VENT_REACTION: "Community Engagement",
    ACTION_WELCOME: "Welcoming New Members",
    ACTION_RESEARCH_UPVOTE: "Exposing the Deceit",
    ACTION_PROFILE_COMPLETED: "Profile Completion",
    ACTION_ALLIANCE_FORMED: "Forging an Alliance",
    ACTION_PHOTO_CAPTURE: "Photo Challenge",
    ACTION_ACHIEVEMENT_UNLOCK: "Achievement Unlock",
    ACTION_EARLY_TIMELAPSE_PENALTY: "Early Time-lapse",
}


def get_community_action(action_type: str) -> dict | None:
    return COMMUNITY_ACTIONS.get((action_type or "").strip())


def action_title(action_type: str) -> str:
    return ACTION_TITLES.get(action_type, action_type)


def calculate_streak_bonus(streak_days: int) -> int:
    """Daily login bonus for a streak of `streak_days` previous days (max +30)."""
    days = max(0, int(streak_days or 0))
    return min(days * DAILY_STREAK_BONUS_PER_DAY, DAILY_STREAK_BONUS_CAP)


def calculate_photo_reward(streak: int, is_first_photo: bool) -> dict:
    bonus = PHOTO_FIRST_BONUS if is_first_photo else 0
    streak_bonus = min(streak * PHOTO_STREAK_BONUS_PER_DAY, PHOTO_STREAK_BONUS_CAP) if streak > 1 else 0
    return {
        "base_points": PHOTO_BASE_LIGHT,
        "bonus_points": bonus,
        "streak_bonus": streak_bonus,
        "total": PHOTO_BASE_LIGHT + bonus + streak_bonus,
    }


def calculate_early_penalty(challenge_points: int) -> int:
    return max(0, int(challenge_points or 0)) * EARLY_TIMELAPSE_PENALTY_PERCENT // 100
