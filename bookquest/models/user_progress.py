"""Per-user progress aggregate."""

from datetime import datetime

from bookquest import db
from bookquest.utils.timeutil import isoformat


class UserProgress(db.Model):
    """XP, coins and streak totals for one user.

    Totals are written only by ``RewardService.apply_reward``.
    """

    __tablename__ = "user_progress"

    user_id = db.Column(db.Integer, primary_key=True, autoincrement=False)

    total_xp = db.Column(db.Integer, default=0, nullable=False)
    total_coins = db.Column(db.Integer, default=0, nullable=False)

    current_streak = db.Column(db.Integer, default=0, nullable=False)
    longest_streak = db.Column(db.Integer, default=0, nullable=False)
    last_activity_date = db.Column(db.Date, nullable=True)

    timezone = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def level(self) -> int:
        from bookquest.services.level_service import LevelService

        return LevelService.calculate_level(self.total_xp)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        from bookquest.services.level_service import LevelService

        return {
            "user_id": self.user_id,
            "total_xp": self.total_xp,
            "total_coins": self.total_coins,
            "level": self.level,
            "xp_to_next_level": LevelService.get_xp_to_next_level(self.total_xp),
            "level_progress": LevelService.get_level_progress(self.total_xp),
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_activity_date": (
                self.last_activity_date.isoformat() if self.last_activity_date else None
            ),
            "timezone": self.timezone,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<UserProgress {self.user_id} xp={self.total_xp}>"
