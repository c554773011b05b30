"""Award engine: the one path by which Light is earned or deducted.

An award is
  1. a new points_transactions row,
  2. an atomic increment of user_tiers.total_light,
  3. current_tier recomputed from the new total and saved with it,
all in one database transaction. After that transaction commits, achievements
are evaluated and the user is notified. Those follow-ups are best-effort: if
they fail the award still stands.

Composite operations (daily claim, community action, photo capture) write
their own rows, call stage_award() in the same transaction, commit with
commit_ledger(), then call settle_award(). Awards payable only once per source go
through award_once(), which commits a unique receipt row with the award.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from achievements import find_unlockable
from auth import require_user
from catalog import ACTION_ACHIEVEMENT_UNLOCK, NON_TRIGGERING_ACTIONS, action_title
from errors import AlreadyAwarded, InvalidAction, StoreFailure, Unauthenticated
from extensions import db
from ledger_dates import day_bounds_utc, ledger_today
from models_achievements import UserAchievement
from models_notifications import NOTIFY_ACHIEVEMENT, NOTIFY_LIGHT_EARNED, NOTIFY_PENALTY
from models_points import OneTimeAward, PointsTransaction, UserTier
from notifications import notify
from tiers import compute_tier, tier_progress, tier_title


points_api = Blueprint("points_api", __name__)


@dataclass
class AwardResult:
    user_id: str
    action_type: str
    points_amount: int
    transaction_id: str
    new_total: int
    new_tier: int
    previous_tier: int
    # Differs from points_amount only when a deduction hit the zero floor.
    applied_amount: int
    unlocked_achievements: list = field(default_factory=list)

    @property
    def tier_changed(self) -> bool:
        return self.new_tier != self.previous_tier

    def to_dict(self):
        return {
            "transaction_id": self.transaction_id,
            "action_type": self.action_type,
            "points_amount": self.points_amount,
            "applied_amount": self.applied_amount,
            "new_total": self.new_total,
            "new_tier": self.new_tier,
            "tier_title": tier_title(self.new_tier),
            "tier_changed": self.tier_changed,
            "unlocked_achievements": list(self.unlocked_achievements),
        }


def _locked_standing(user_id: str):
    return db.session.execute(
        select(UserTier.total_light, UserTier.current_tier)
        .where(UserTier.user_id == user_id)
        .with_for_update()
    ).first()


def _increment_total(user_id: str, amount: int, now: datetime) -> tuple[int, int, int]:
    """Add `amount` to the user's lifetime total in one UPDATE.

    Returns (total before, total after, tier stored before this award). The
    row is locked first so the before/after pair belongs to this award alone.
    Creates the row on the first award. Totals are floored at zero.
    """
    current = _locked_standing(user_id)
    if current is None:
        try:
            with db.session.begin_nested():
                db.session.add(
                    UserTier(
                        user_id=user_id,
                        total_light=0,
                        current_tier=compute_tier(0),
                        tier_achieved_at=now,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            # Another request created the row first.
            pass
        current = _locked_standing(user_id)

    incremented = UserTier.total_light + amount
    db.session.execute(
        update(UserTier)
        .where(UserTier.user_id == user_id)
        .values(total_light=case((incremented < 0, 0), else_=incremented), updated_at=now)
        .execution_options(synchronize_session=False)
    )
    new_total = db.session.execute(select(UserTier.total_light).where(UserTier.user_id == user_id)).scalar_one()
    return int(current.total_light), int(new_total), int(current.current_tier)


def stage_award(
    user_id: str,
    action_type: str,
    points_amount: int,
    source_id: str | None = None,
    source_type: str | None = None,
    metadata: dict | None = None,
) -> AwardResult:
    """Write an award into the current transaction without committing it."""
    if not user_id:
        raise Unauthenticated()
    if not action_type:
        raise InvalidAction("Action type is required")
    if isinstance(points_amount, bool) or not isinstance(points_amount, int):
        raise InvalidAction("points_amount must be a whole number")

    now = datetime.utcnow()
    old_total, new_total, previous_tier = _increment_total(user_id, points_amount, now)
    applied = new_total - old_total

    meta = dict(metadata or {})
    if applied != points_amount:
        # Deduction clipped at zero; lets the ledger sum be reconciled with the total.
        meta["applied_amount"] = applied

    txn = PointsTransaction(
        user_id=user_id,
        action_type=action_type,
        points_amount=points_amount,
        source_id=str(source_id)[:64] if source_id is not None else None,
        source_type=source_type,
        metadata_json=json.dumps(meta, default=str),
        created_at=now,
    )
    db.session.add(txn)
    db.session.flush()

    new_tier = compute_tier(new_total)
    if new_tier != previous_tier:
        db.session.execute(
            update(UserTier)
            .where(UserTier.user_id == user_id)
            .values(current_tier=new_tier, tier_achieved_at=now)
            .execution_options(synchronize_session=False)
        )

    return AwardResult(
        user_id=user_id,
        action_type=action_type,
        points_amount=points_amount,
        transaction_id=txn.id,
        new_total=new_total,
        new_tier=new_tier,
        previous_tier=previous_tier,
        applied_amount=applied,
    )


def commit_ledger(what: str) -> None:
    """Commit the current ledger transaction or roll all of it back."""
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Ledger write failed: %s", what)
        raise StoreFailure() from exc


def _unlock_achievements(user_id: str, action_type: str, metadata: dict | None, result: AwardResult) -> None:
    for achievement in find_unlockable(user_id, action_type, metadata):
        reward = int(achievement.points_reward or 0)
        try:
            db.session.add(UserAchievement(user_id=user_id, achievement_id=achievement.id))
            db.session.flush()
            reward_result = None
            if reward > 0:
                reward_result = stage_award(
                    user_id,
                    ACTION_ACHIEVEMENT_UNLOCK,
                    reward,
                    source_id=achievement.id,
                    source_type="achievement",
                    metadata={"achievement_name": achievement.name},
                )
            db.session.commit()
        except IntegrityError:
            # Unlocked by a concurrent award.
            db.session.rollback()
            continue

        if reward_result is not None:
            result.new_total = reward_result.new_total
            result.new_tier = reward_result.new_tier
        result.unlocked_achievements.append(
            {"id": achievement.id, "name": achievement.name, "points_reward": reward}
        )
        notify(
            user_id,
            NOTIFY_ACHIEVEMENT,
            "Achievement Unlocked! 🏆",
            f"{achievement.name}: you've earned +{reward} Light!",
        )


def settle_award(result: AwardResult, metadata: dict | None = None) -> AwardResult:
    """Post-commit follow-ups for an award. Never raises."""
    if result.points_amount >= 0:
        notify(
            result.user_id,
            NOTIFY_LIGHT_EARNED,
            "Light Earned!",
            f"+{result.points_amount} Light for {action_title(result.action_type)}",
        )
    else:
        notify(
            result.user_id,
            NOTIFY_PENALTY,
            "Light Deducted",
            f"{-result.points_amount} Light deducted for {action_title(result.action_type)}",
        )

    if result.action_type not in NON_TRIGGERING_ACTIONS:
        try:
            _unlock_achievements(result.user_id, result.action_type, metadata, result)
        except Exception:
            db.session.rollback()
            current_app.logger.warning(
                "Achievement check failed for %s after %s", result.user_id, result.action_type, exc_info=True
            )

    if result.tier_changed:
        current_app.logger.info(
            "User %s moved from tier %s to tier %s (total %s)",
            result.user_id, result.previous_tier, result.new_tier, result.new_total,
        )
    return result


def award_light(
    user_id: str,
    action_type: str,
    points_amount: int,
    source_id: str | None = None,
    source_type: str | None = None,
    metadata: dict | None = None,
) -> AwardResult:
    """Award (or, with a negative amount, deduct) Light and return the new standing."""
    if not user_id:
        raise Unauthenticated()
    try:
        result = stage_award(user_id, action_type, points_amount, source_id, source_type, metadata)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Award failed for %s (%s)", user_id, action_type)
        raise StoreFailure() from exc
    except Exception:
        db.session.rollback()
        raise
    commit_ledger(f"award {action_type} for {user_id}")
    return settle_award(result, metadata)


def award_once(
    user_id: str,
    action_type: str,
    points_amount: int,
    source_key: str,
    source_type: str | None = None,
    metadata: dict | None = None,
) -> AwardResult:
    """Award paid at most once per (user, action, source_key).

    The receipt row and the award commit together; a repeat, including a
    concurrent one, fails on the receipt's unique key and raises AlreadyAwarded.
    """
    if not user_id:
        raise Unauthenticated()
    key = str(source_key or "").strip()[:64]
    if not key:
        raise InvalidAction("A source id is required for this action")

    try:
        receipt = OneTimeAward(user_id=user_id, action_type=action_type, source_key=key)
        db.session.add(receipt)
        db.session.flush()
        result = stage_award(user_id, action_type, points_amount, key, source_type, metadata)
        receipt.transaction_id = result.transaction_id
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise AlreadyAwarded(action_type=action_type, source_id=key) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("One-time award failed for %s (%s)", user_id, action_type)
        raise StoreFailure() from exc
    except Exception:
        db.session.rollback()
        raise
    return settle_award(result, metadata)


def get_user_tier(user_id: str) -> dict:
    row = UserTier.query.filter_by(user_id=user_id).first()
    if not row:
        return {"user_id": user_id, "total_light": 0, "current_tier": compute_tier(0), "tier_achieved_at": None}
    return row.to_dict()


def light_earned_on(user_id: str, day) -> int:
    start, end = day_bounds_utc(day)
    total = (
        db.session.query(func.coalesce(func.sum(PointsTransaction.points_amount), 0))
        .filter(PointsTransaction.user_id == user_id)
        .filter(PointsTransaction.created_at >= start)
        .filter(PointsTransaction.created_at < end)
        .filter(PointsTransaction.points_amount > 0)
        .scalar()
    )
    return int(total or 0)


def recent_transactions(user_id: str, limit: int = 10) -> list[PointsTransaction]:
    return (
        PointsTransaction.query.filter_by(user_id=user_id)
        .order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        .limit(limit)
        .all()
    )


@points_api.get("/api/points/summary")
def points_summary():
    user_id = require_user()
    tier = get_user_tier(user_id)
    return jsonify(
        {
            "success": True,
            "tier": tier,
            "progress": tier_progress(tier["total_light"]),
            "today_earned": light_earned_on(user_id, ledger_today()),
            "recent_transactions": [t.to_dict() for t in recent_transactions(user_id)],
        }
    )


@points_api.get("/api/points/transactions")
def points_transactions():
    user_id = require_user()
    try:
        limit = int(request.args.get("limit") or 10)
    except ValueError:
        return jsonify({"success": False, "error": "invalid_limit", "message": "limit must be a number"}), 400
    limit = max(1, min(limit, 100))
    return jsonify(
        {"success": True, "transactions": [t.to_dict() for t in recent_transactions(user_id, limit)]}
    )
