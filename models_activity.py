import json
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Index, Integer, String, Text, UniqueConstraint

from extensions import db


class Profile(db.Model):
    """Per-user profile aggregate. Only the streak fields are owned by the ledger."""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True)
    streak_count = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_active_date = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "current_streak": int(self.streak_count or 0),
            "longest_streak": int(self.longest_streak or 0),
            "last_active_date": self.last_active_date.isoformat() if self.last_active_date else None,
        }


class DailyActivity(db.Model):
    """One row per user per calendar day. A row for today means the daily bonus is claimed."""

    __tablename__ = "daily_activities"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    activity_date = Column(Date, nullable=False)
    activities_completed = Column(Text, nullable=True)
    daily_light_earned = Column(Integer, nullable=False, default=0)
    streak_bonus = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "activity_date", name="uq_daily_activity_user_date"),
    )

    def to_dict(self):
        try:
            completed = json.loads(self.activities_completed) if self.activities_completed else {}
        except Exception:
            completed = {}
        return {
            "user_id": self.user_id,
            "activity_date": self.activity_date.isoformat(),
            "activities_completed": completed,
            "daily_light_earned": int(self.daily_light_earned or 0),
            "streak_bonus": int(self.streak_bonus or 0),
        }


class CommunityAction(db.Model):
    """Per (user, action type, day) counter behind the community action caps.

    daily_count is only incremented through a conditional UPDATE that checks the cap.
    """

    __tablename__ = "community_actions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    action_type = Column(String(40), nullable=False)
    action_date = Column(Date, nullable=False)
    daily_count = Column(Integer, nullable=False, default=0)
    light_earned = Column(Integer, nullable=False, default=0)
    # Targets of the first action that day
    target_user_id = Column(String(64), nullable=True)
    target_content_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "action_type", "action_date", name="uq_community_action_user_type_date"),
        Index("idx_community_action_user_date", "user_id", "action_date"),
    )

    def to_dict(self):
        return {
            "action_type": self.action_type,
            "action_date": self.action_date.isoformat(),
            "daily_count": int(self.daily_count or 0),
            "light_earned": int(self.light_earned or 0),
        }
