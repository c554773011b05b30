"""Capped community actions.

Routes:
- GET  /api/community/actions
- POST /api/community/actions/<action_type>

Each action type allows at most max_daily occurrences per user per ledger day
and pays the catalog's light_per_action. The caller picks the action, never the
amount. The cap is enforced by a conditional UPDATE on the day's counter, so
concurrent requests past the cap are refused rather than overcounted.
"""

from __future__ import annotations

from datetime import date, datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth import require_user
from catalog import (
    ACTION_RESEARCH_UPVOTE,
    ACTION_SUPPORT,
    ACTION_VENT_REACTION,
    ACTION_WELCOME,
    COMMUNITY_ACTIONS,
    get_community_action,
)
from errors import CapReached, InvalidAction, StoreFailure, Unauthenticated
from extensions import db, limiter
from ledger_dates import ledger_today
from models_activity import CommunityAction
from points import settle_award, stage_award


community_api = Blueprint("community_api", __name__)


def _counter_filter(user_id: str, action_type: str, day: date):
    return (
        CommunityAction.user_id == user_id,
        CommunityAction.action_type == action_type,
        CommunityAction.action_date == day,
    )


def _increment_counter(
    user_id: str,
    action_type: str,
    day: date,
    action: dict,
    target_user_id: str | None,
    target_content_id: str | None,
) -> int:
    """Count one more action for the day if under the cap. Returns the new daily_count."""
    max_daily = int(action["max_daily"])
    light = int(action["light_per_action"])
    now = datetime.utcnow()
    where = _counter_filter(user_id, action_type, day)

    bump = (
        update(CommunityAction)
        .where(*where)
        .where(CommunityAction.daily_count < max_daily)
        .values(
            daily_count=CommunityAction.daily_count + 1,
            light_earned=CommunityAction.light_earned + light,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    def _read_count() -> int:
        return int(db.session.execute(select(CommunityAction.daily_count).where(*where)).scalar_one())

    if db.session.execute(bump).rowcount == 1:
        return _read_count()

    exists = db.session.execute(select(CommunityAction.id).where(*where)).first() is not None
    if exists or max_daily <= 0:
        raise CapReached(action_type=action_type, max_daily=max_daily)

    try:
        with db.session.begin_nested():
            db.session.add(
                CommunityAction(
                    user_id=user_id,
                    action_type=action_type,
                    action_date=day,
                    daily_count=1,
                    light_earned=light,
                    target_user_id=target_user_id,
                    target_content_id=target_content_id,
                    created_at=now,
                    updated_at=now,
                )
            )
        return 1
    except IntegrityError:
        # A concurrent request created today's counter first.
        if db.session.execute(bump).rowcount == 1:
            return _read_count()
        raise CapReached(action_type=action_type, max_daily=max_daily)


def perform_action(
    user_id: str,
    action_type: str,
    target_user_id: str | None = None,
    target_content_id: str | None = None,
    metadata: dict | None = None,
    today: date | None = None,
) -> dict:
    if not user_id:
        raise Unauthenticated()
    action = get_community_action(action_type)
    if not action:
        raise InvalidAction(action_type=action_type)

    today = today or ledger_today()
    light = int(action["light_per_action"])

    try:
        daily_count = _increment_counter(user_id, action_type, today, action, target_user_id, target_content_id)
        # Caller metadata is kept apart so it cannot satisfy achievement requirements.
        award_meta = {
            "target_user_id": target_user_id,
            "daily_count": daily_count,
            "client": dict(metadata or {}),
        }
        result = stage_award(user_id, action_type, light, target_content_id, "community_action", award_meta)
        db.session.commit()
    except CapReached:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Community action %s failed for %s", action_type, user_id)
        raise StoreFailure() from exc

    settle_award(result, award_meta)

    return {
        "action_type": action_type,
        "points_earned": light,
        "daily_count": daily_count,
        "remaining": max(0, int(action["max_daily"]) - daily_count),
        "award": result.to_dict(),
    }


def todays_actions(user_id: str, today: date | None = None) -> dict:
    """Every catalog action with today's count and what is left."""
    today = today or ledger_today()
    rows = CommunityAction.query.filter_by(user_id=user_id, action_date=today).all()
    counts = {r.action_type: int(r.daily_count or 0) for r in rows}

    out = {}
    for action_type, action in COMMUNITY_ACTIONS.items():
        count = counts.get(action_type, 0)
        out[action_type] = {
            "action_type": action_type,
            "description": action["description"],
            "max_daily": action["max_daily"],
            "light_per_action": action["light_per_action"],
            "daily_count": count,
            "remaining": max(0, action["max_daily"] - count),
        }
    return out


def remaining_actions(user_id: str, action_type: str, today: date | None = None) -> int:
    item = todays_actions(user_id, today).get(action_type)
    return item["remaining"] if item else 0


def can_perform_action(user_id: str, action_type: str, today: date | None = None) -> bool:
    return remaining_actions(user_id, action_type, today) > 0


def support_user(user_id: str, target_user_id: str, support_type: str = "general") -> dict:
    return perform_action(user_id, ACTION_SUPPORT, target_user_id=target_user_id, metadata={"support_type": support_type})


def react_to_vent(user_id: str, post_id: str, reaction_type: str = "support") -> dict:
    return perform_action(user_id, ACTION_VENT_REACTION, target_content_id=post_id, metadata={"reaction_type": reaction_type})


def welcome_new_member(user_id: str, new_user_id: str) -> dict:
    return perform_action(user_id, ACTION_WELCOME, target_user_id=new_user_id, metadata={"welcome_type": "new_member"})


def upvote_research(user_id: str, research_id: str) -> dict:
    return perform_action(user_id, ACTION_RESEARCH_UPVOTE, target_content_id=research_id, metadata={"vote_type": "upvote"})


@community_api.get("/api/community/actions")
def list_community_actions():
    user_id = require_user()
    return jsonify({"success": True, "actions": todays_actions(user_id)})


@community_api.post("/api/community/actions/<action_type>")
@limiter.limit("30 per minute")
def post_community_action(action_type: str):
    user_id = require_user()
    data = request.get_json(silent=True) or {}
    metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}

    out = perform_action(
        user_id,
        action_type,
        target_user_id=(data.get("target_user_id") or None),
        target_content_id=(data.get("target_content_id") or None),
        metadata=metadata,
    )
    return jsonify({"success": True, **out})
