"""Photo challenge progress, as far as the ledger needs it.

The photos themselves live elsewhere. points_earned here is the challenge's own
counter; the early time-lapse penalty is computed from it.
"""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Integer, String, UniqueConstraint

from extensions import db


class ChallengeProgress(db.Model):
    __tablename__ = "user_challenge_progress"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    challenge_id = Column(String(64), nullable=False)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    total_photos = Column(Integer, nullable=False, default=0)
    points_earned = Column(Integer, nullable=False, default=0)
    last_photo_date = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_challenge_progress_user_challenge"),
    )

    def to_dict(self):
        return {
            "challenge_id": self.challenge_id,
            "current_streak": int(self.current_streak or 0),
            "longest_streak": int(self.longest_streak or 0),
            "total_photos": int(self.total_photos or 0),
            "points_earned": int(self.points_earned or 0),
            "last_photo_date": self.last_photo_date.isoformat() if self.last_photo_date else None,
        }
