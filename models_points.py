"""Light ledger models.

points_transactions is append-only: rows are inserted by the award engine and
never updated or deleted. Corrections and penalties are new rows with a
negative points_amount.

user_tiers holds the per-user aggregate. total_light and current_tier are only
ever written together, by the award engine, through atomic SQL updates.
"""

import json
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from extensions import db


def _new_id() -> str:
    return str(uuid.uuid4())


class PointsTransaction(db.Model):
    __tablename__ = "points_transactions"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(64), nullable=False, index=True)
    action_type = Column(String(40), nullable=False)
    points_amount = Column(Integer, nullable=False)
    source_id = Column(String(64), nullable=True)
    source_type = Column(String(40), nullable=True)
    metadata_json = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_points_tx_user_created", "user_id", "created_at"),
        Index("idx_points_tx_action", "action_type"),
    )

    @property
    def meta(self) -> dict:
        if not self.metadata_json:
            return {}
        try:
            return json.loads(self.metadata_json)
        except Exception:
            return {}

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action_type": self.action_type,
            "points_amount": int(self.points_amount or 0),
            "source_id": self.source_id,
            "source_type": self.source_type,
            "metadata": self.meta,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class UserTier(db.Model):
    __tablename__ = "user_tiers"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True)
    total_light = Column(Integer, nullable=False, default=0)
    current_tier = Column(Integer, nullable=False, default=1)
    tier_achieved_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "total_light": int(self.total_light or 0),
            "current_tier": int(self.current_tier or 1),
            "tier_achieved_at": self.tier_achieved_at.isoformat() if self.tier_achieved_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class OneTimeAward(db.Model):
    """Receipt for an award that may be paid at most once per (user, action, source).

    Inserted in the same transaction as the award; the unique key is the guard.
    """

    __tablename__ = "one_time_awards"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    action_type = Column(String(40), nullable=False)
    source_key = Column(String(64), nullable=False)
    transaction_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("uq_one_time_award", "user_id", "action_type", "source_key", unique=True),
    )
