from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text

from extensions import db


NOTIFY_LIGHT_EARNED = "light_earned"
NOTIFY_ACHIEVEMENT = "achievement"
NOTIFY_PENALTY = "penalty"


class Notification(db.Model):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    title = Column(String(120), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_notification_user_read", "user_id", "read"),
        Index("idx_notification_created", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "read": bool(self.read),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
