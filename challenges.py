"""Photo challenge awards and fixed-value activity awards.

Routes:
- POST /api/challenges/<challenge_id>/photos
- POST /api/challenges/<challenge_id>/timelapse   {"early": bool, "timelapse_id": str}
- POST /api/activities/knowledge                  {"strategy_id": str}
- POST /api/activities/alliance                   {"connection_id": str}
- POST /api/activities/profile-completion         {"completion_percentage": int}

One photo per challenge per ledger day counts. Generating the time-lapse before
the challenge ends forfeits 20% of the points the challenge has earned so far,
recorded as a negative award.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth import require_user
from catalog import (
    ACTION_ALLIANCE_FORMED,
    ACTION_EARLY_TIMELAPSE_PENALTY,
    ACTION_KNOWLEDGE_SHARED,
    ACTION_PHOTO_CAPTURE,
    ACTION_PROFILE_COMPLETED,
    EARLY_TIMELAPSE_PENALTY_PERCENT,
    FIXED_REWARDS,
    PHOTO_CHALLENGE_POINTS,
    calculate_early_penalty,
    calculate_photo_reward,
)
from errors import AlreadyAwarded, CapReached, InvalidAction, StoreFailure, Unauthenticated
from extensions import db, limiter
from ledger_dates import ledger_today
from models_challenges import ChallengeProgress
from points import award_once, settle_award, stage_award


challenges_api = Blueprint("challenges_api", __name__)

# Attempts at the points_earned compare-and-swap before giving up.
PENALTY_CAS_ATTEMPTS = 3

# Source key of the one-time profile completion reward.
PROFILE_REWARD_KEY = "profile"


def _progress(user_id: str, challenge_id: str) -> ChallengeProgress | None:
    return ChallengeProgress.query.filter_by(user_id=user_id, challenge_id=challenge_id).first()


def _photo_taken(challenge_id: str) -> CapReached:
    return CapReached("Photo already captured today for this challenge", challenge_id=challenge_id)


def _advance_progress(user_id: str, challenge_id: str, today: date) -> dict:
    """Record today's photo on the challenge. Returns streak and day info."""
    now = datetime.utcnow()
    progress = _progress(user_id, challenge_id)

    if progress is None:
        try:
            with db.session.begin_nested():
                db.session.add(
                    ChallengeProgress(
                        user_id=user_id,
                        challenge_id=challenge_id,
                        current_streak=1,
                        longest_streak=1,
                        total_photos=1,
                        points_earned=PHOTO_CHALLENGE_POINTS,
                        last_photo_date=today,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            # Concurrent first capture.
            raise _photo_taken(challenge_id)
        return {"streak": 1, "day_number": 1, "is_first_photo": True}

    last = progress.last_photo_date
    if last is not None and last >= today:
        raise _photo_taken(challenge_id)

    streak = int(progress.current_streak or 0) + 1 if last == today - timedelta(days=1) else 1
    day_number = int(progress.total_photos or 0) + 1

    # Only succeeds if nobody recorded a photo since we read the row.
    guard = (
        ChallengeProgress.last_photo_date.is_(None)
        if last is None
        else ChallengeProgress.last_photo_date == last
    )
    res = db.session.execute(
        update(ChallengeProgress)
        .where(ChallengeProgress.id == progress.id, guard)
        .values(
            current_streak=streak,
            longest_streak=max(int(progress.longest_streak or 0), streak),
            total_photos=ChallengeProgress.total_photos + 1,
            points_earned=ChallengeProgress.points_earned + PHOTO_CHALLENGE_POINTS,
            last_photo_date=today,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise _photo_taken(challenge_id)

    return {"streak": streak, "day_number": day_number, "is_first_photo": day_number == 1}


def record_photo_capture(user_id: str, challenge_id: str, today: date | None = None) -> dict:
    if not user_id:
        raise Unauthenticated()
    if not challenge_id:
        raise InvalidAction("challenge_id is required")

    today = today or ledger_today()
    try:
        info = _advance_progress(user_id, challenge_id, today)
        reward = calculate_photo_reward(info["streak"], info["is_first_photo"])
        metadata = {
            "challenge_id": challenge_id,
            "day_number": info["day_number"],
            "streak": info["streak"],
            "is_first_photo": info["is_first_photo"],
            "base_points": reward["base_points"],
            "bonus_points": reward["bonus_points"],
            "streak_bonus": reward["streak_bonus"],
        }
        result = stage_award(user_id, ACTION_PHOTO_CAPTURE, reward["total"], challenge_id, "photo_challenge", metadata)
        db.session.commit()
    except CapReached:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Photo capture failed for %s on %s", user_id, challenge_id)
        raise StoreFailure() from exc

    settle_award(result, metadata)

    return {
        "challenge_id": challenge_id,
        "day_number": info["day_number"],
        "streak": info["streak"],
        "points_earned": reward["total"],
        "reward": reward,
        "award": result.to_dict(),
    }


def apply_early_timelapse_penalty(user_id: str, challenge_id: str, timelapse_id: str | None = None) -> dict:
    """Deduct 20% of the challenge's earned points. A challenge with nothing to forfeit is a no-op."""
    if not user_id:
        raise Unauthenticated()

    penalty = 0
    try:
        for _ in range(PENALTY_CAS_ATTEMPTS):
            row = db.session.execute(
                select(ChallengeProgress.id, ChallengeProgress.points_earned).where(
                    ChallengeProgress.user_id == user_id,
                    ChallengeProgress.challenge_id == challenge_id,
                )
            ).first()
            observed = int(row.points_earned or 0) if row else 0
            penalty = calculate_early_penalty(observed)
            if penalty <= 0:
                db.session.rollback()
                return {"challenge_id": challenge_id, "penalty": 0, "award": None}

            res = db.session.execute(
                update(ChallengeProgress)
                .where(ChallengeProgress.id == row.id, ChallengeProgress.points_earned == observed)
                .values(points_earned=observed - penalty, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 1:
                break
            db.session.rollback()
        else:
            current_app.logger.warning("Penalty for %s on %s lost every update race", user_id, challenge_id)
            raise StoreFailure()

        metadata = {
            "reason": "early_generation_penalty",
            "challenge_id": challenge_id,
            "challenge_points": observed,
            "penalty_percent": EARLY_TIMELAPSE_PENALTY_PERCENT,
        }
        result = stage_award(
            user_id, ACTION_EARLY_TIMELAPSE_PENALTY, -penalty, timelapse_id or challenge_id, "photo_challenge", metadata
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Early time-lapse penalty failed for %s on %s", user_id, challenge_id)
        raise StoreFailure() from exc

    current_app.logger.info("Early time-lapse penalty of %s Light for %s on %s", penalty, user_id, challenge_id)
    settle_award(result, metadata)
    return {"challenge_id": challenge_id, "penalty": penalty, "award": result.to_dict()}


def share_knowledge(user_id: str, strategy_id: str) -> dict:
    """150 Light, once per shared strategy."""
    result = award_once(
        user_id,
        ACTION_KNOWLEDGE_SHARED,
        FIXED_REWARDS[ACTION_KNOWLEDGE_SHARED],
        strategy_id,
        source_type="relief_strategy",
        metadata={"strategy_id": strategy_id},
    )
    return result.to_dict()


def forge_alliance(user_id: str, connection_id: str) -> dict:
    """20 Light, once per connection."""
    result = award_once(
        user_id,
        ACTION_ALLIANCE_FORMED,
        FIXED_REWARDS[ACTION_ALLIANCE_FORMED],
        connection_id,
        source_type="connection_made",
        metadata={"connection_id": connection_id},
    )
    return result.to_dict()


def complete_profile(user_id: str, completion_percentage) -> dict:
    """Pay forge_armor once, the first time the profile reaches 100%."""
    if not user_id:
        raise Unauthenticated()
    if isinstance(completion_percentage, bool):
        raise InvalidAction("completion_percentage must be between 0 and 100")
    try:
        pct = int(completion_percentage)
    except (TypeError, ValueError):
        raise InvalidAction("completion_percentage must be between 0 and 100")
    if pct < 0 or pct > 100:
        raise InvalidAction("completion_percentage must be between 0 and 100")

    if pct < 100:
        return {"awarded": False, "completion_percentage": pct, "award": None}

    try:
        result = award_once(
            user_id,
            ACTION_PROFILE_COMPLETED,
            FIXED_REWARDS[ACTION_PROFILE_COMPLETED],
            PROFILE_REWARD_KEY,
            source_type="profile",
            metadata={"completion_percentage": pct},
        )
    except AlreadyAwarded:
        return {"awarded": False, "completion_percentage": pct, "award": None}
    return {"awarded": True, "completion_percentage": pct, "award": result.to_dict()}


@challenges_api.post("/api/challenges/<challenge_id>/photos")
@limiter.limit("10 per minute")
def post_challenge_photo(challenge_id: str):
    user_id = require_user()
    return jsonify({"success": True, **record_photo_capture(user_id, challenge_id)})


@challenges_api.post("/api/challenges/<challenge_id>/timelapse")
@limiter.limit("10 per minute")
def post_challenge_timelapse(challenge_id: str):
    user_id = require_user()
    data = request.get_json(silent=True) or {}
    if not data.get("early"):
        return jsonify({"success": True, "challenge_id": challenge_id, "penalty": 0, "award": None})
    out = apply_early_timelapse_penalty(user_id, challenge_id, data.get("timelapse_id") or None)
    return jsonify({"success": True, **out})


@challenges_api.post("/api/activities/knowledge")
@limiter.limit("20 per minute")
def post_knowledge():
    user_id = require_user()
    data = request.get_json(silent=True) or {}
    return jsonify({"success": True, "award": share_knowledge(user_id, data.get("strategy_id") or None)})


@challenges_api.post("/api/activities/alliance")
@limiter.limit("20 per minute")
def post_alliance():
    user_id = require_user()
    data = request.get_json(silent=True) or {}
    return jsonify({"success": True, "award": forge_alliance(user_id, data.get("connection_id") or None)})


@challenges_api.post("/api/activities/profile-completion")
@limiter.limit("20 per minute")
def post_profile_completion():
    user_id = require_user()
    data = request.get_json(silent=True) or {}
    return jsonify({"success": True, **complete_profile(user_id, data.get("completion_percentage"))})
