from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from extensions import db


class Achievement(db.Model):
    __tablename__ = "achievements"

    id = Column(String(50), primary_key=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(40), nullable=False)
    requirement_type = Column(String(40), nullable=False)
    requirement_value = Column(Integer, nullable=False, default=0)
    points_reward = Column(Integer, nullable=False, default=0)
    rarity = Column(String(20), nullable=False, default="common")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "requirement_type": self.requirement_type,
            "requirement_value": int(self.requirement_value or 0),
            "points_reward": int(self.points_reward or 0),
            "rarity": self.rarity,
        }


class UserAchievement(db.Model):
    __tablename__ = "user_achievements"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    achievement_id = Column(String(50), nullable=False)
    unlocked_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_user_achievement", "user_id", "achievement_id", unique=True),
    )

    def to_dict(self):
        return {
            "achievement_id": self.achievement_id,
            "unlocked_at": self.unlocked_at.isoformat() if self.unlocked_at else None,
        }
