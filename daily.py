"""Daily login bonus and streaks.

Routes:
- GET  /api/daily/status
- POST /api/daily/claim

Rules:
- One claim per user per ledger day, enforced by the unique
  (user_id, activity_date) constraint on daily_activities.
- A claim continues the streak only if yesterday has a claim; any gap
  restarts it at 1.
- Reward is 10 + min(prior streak * 5, 30), where prior streak is the streak
  before today's claim (0 after a gap).
- The activity row, the profile streak and the points transaction commit
  together or not at all.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth import require_user
from catalog import ACTION_DAILY_LOGIN, DAILY_BASE_LIGHT, calculate_streak_bonus
from errors import AlreadyClaimedToday, StoreFailure, Unauthenticated
from extensions import db, limiter
from ledger_dates import ledger_today
from models_activity import DailyActivity, Profile
from points import settle_award, stage_award


daily_api = Blueprint("daily_api", __name__)


def _claimed_on(user_id: str, day: date) -> bool:
    return DailyActivity.query.filter_by(user_id=user_id, activity_date=day).first() is not None


def _get_profile(user_id: str) -> Profile:
    profile = Profile.query.filter_by(user_id=user_id).first()
    if not profile:
        profile = Profile(user_id=user_id, streak_count=0, longest_streak=0)
        db.session.add(profile)
    return profile


def claim_daily_bonus(user_id: str, today: date | None = None) -> dict:
    if not user_id:
        raise Unauthenticated()

    today = today or ledger_today()
    yesterday = today - timedelta(days=1)

    if _claimed_on(user_id, today):
        db.session.rollback()
        raise AlreadyClaimedToday()

    try:
        continued = _claimed_on(user_id, yesterday)
        profile = _get_profile(user_id)

        previous_longest = int(profile.longest_streak or 0)
        current_streak = int(profile.streak_count or 0) + 1 if continued else 1
        longest_streak = max(previous_longest, current_streak)

        # Previous days count for the bonus, today's claim does not.
        streak_bonus = calculate_streak_bonus(current_streak - 1)
        total_points = DAILY_BASE_LIGHT + streak_bonus

        now = datetime.utcnow()
        db.session.add(
            DailyActivity(
                user_id=user_id,
                activity_date=today,
                activities_completed=json.dumps({"daily_login": True, "login_time": now.isoformat()}),
                daily_light_earned=total_points,
                streak_bonus=streak_bonus,
                created_at=now,
            )
        )
        db.session.flush()

        profile.streak_count = current_streak
        profile.longest_streak = longest_streak
        profile.last_active_date = today
        profile.updated_at = now

        metadata = {
            "streak": current_streak,
            "streak_bonus": streak_bonus,
            "base_points": DAILY_BASE_LIGHT,
        }
        result = stage_award(user_id, ACTION_DAILY_LOGIN, total_points, None, "daily_login", metadata)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if _claimed_on(user_id, today):
            raise AlreadyClaimedToday() from exc
        current_app.logger.exception("Daily claim failed for %s", user_id)
        raise StoreFailure() from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Daily claim failed for %s", user_id)
        raise StoreFailure() from exc

    settle_award(result, metadata)

    return {
        "current_streak": current_streak,
        "longest_streak": longest_streak,
        "points_earned": total_points,
        "streak_bonus": streak_bonus,
        "is_new_record": current_streak > previous_longest,
        "award": result.to_dict(),
    }


def streak_message(status: dict) -> str:
    streak = int(status.get("current_streak") or 0)
    if status.get("today_completed"):
        return f"🔥 {streak} day streak! Come back tomorrow to continue."
    if streak > 0:
        return f"🔥 {streak} day streak. Log in to continue!"
    return "Start your daily resistance! Log in every day to earn bonus Light."


def get_streak_status(user_id: str, today: date | None = None) -> dict:
    today = today or ledger_today()
    profile = Profile.query.filter_by(user_id=user_id).first()
    today_completed = _claimed_on(user_id, today)

    current = int(profile.streak_count or 0) if profile else 0
    # A streak whose last claim is older than yesterday is already broken.
    last = profile.last_active_date if profile else None
    if last is not None and last < today - timedelta(days=1):
        current = 0

    status = {
        "current_streak": current,
        "longest_streak": int(profile.longest_streak or 0) if profile else 0,
        "last_active_date": last.isoformat() if last else None,
        "today_completed": today_completed,
        "can_claim": not today_completed,
    }
    status["message"] = streak_message(status)
    return status


@daily_api.get("/api/daily/status")
def daily_status():
    user_id = require_user()
    return jsonify({"success": True, **get_streak_status(user_id)})


@daily_api.post("/api/daily/claim")
@limiter.limit("10 per minute")
def daily_claim():
    user_id = require_user()
    try:
        out = claim_daily_bonus(user_id)
    except AlreadyClaimedToday:
        return jsonify({"success": True, "already_completed": True, **get_streak_status(user_id)})
    return jsonify({"success": True, "already_completed": False, **out})
