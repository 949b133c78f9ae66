"""Reward ledger, level-up log and badges."""

from datetime import datetime

from bookquest import db
from bookquest.utils.timeutil import isoformat


class RewardHistory(db.Model):
    """One row per paid reward.

    ``(user_id, reward_type, source_id)`` is the idempotency key: a retried
    grant for the same source finds this row and pays nothing.
    """

    __tablename__ = "reward_history"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    reward_type = db.Column(db.String(50), nullable=False)
    source_id = db.Column(db.String(100), nullable=True)

    # Amounts actually credited, level-up bonus included
    xp_amount = db.Column(db.Integer, default=0, nullable=False)
    coin_amount = db.Column(db.Integer, default=0, nullable=False)
    badges = db.Column(db.JSON, nullable=True)
    leveled_up = db.Column(db.Boolean, default=False, nullable=False)
    new_level = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "reward_type", "source_id", name="unique_reward_source"
        ),
    )

    def to_dict(self) -> dict:
        return {
            "reward_type": self.reward_type,
            "source_id": self.source_id,
            "xp": self.xp_amount,
            "coins": self.coin_amount,
            "badges": self.badges or [],
            "leveled_up": self.leveled_up,
            "new_level": self.new_level,
            "created_at": isoformat(self.created_at),
        }


class LevelHistory(db.Model):
    """Level-up log."""

    __tablename__ = "level_history"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    old_level = db.Column(db.Integer, nullable=False)
    new_level = db.Column(db.Integer, nullable=False)
    total_xp_at_levelup = db.Column(db.Integer, nullable=False)
    rewards_given = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)


class UserBadge(db.Model):
    """Badge owned by a user."""

    __tablename__ = "user_badges"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    badge_name = db.Column(db.String(100), nullable=False)
    earned_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("user_id", "badge_name", name="unique_user_badge"),
    )

    def to_dict(self) -> dict:
        return {"name": self.badge_name, "earned_at": isoformat(self.earned_at)}
