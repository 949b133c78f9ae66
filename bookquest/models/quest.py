"""Quest models and quest templates."""

from datetime import datetime
from enum import Enum

from bookquest import db
from bookquest.utils.timeutil import isoformat


class QuestStatus(str, Enum):
    """Quest lifecycle status."""

    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    READY_TO_CLAIM = "ready_to_claim"
    FAILED = "failed"
    EXPIRED = "expired"
    LOCKED = "locked"
    LEGENDARY = "legendary"
    STREAK = "streak"


class QuestType(str, Enum):
    """Temporal category of a quest."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    EVENT = "event"
    ADAPTIVE = "adaptive"
    STREAK = "streak"


class QuestKind(str, Enum):
    """Presentation category of a quest."""

    TIMER = "timer"
    SUMMARY = "summary"
    CHALLENGE = "challenge"
    READING = "reading"


class Quest(db.Model):
    """Time-bounded quest assigned to a user."""

    __tablename__ = "quests"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    template_id = db.Column(db.String(50), nullable=True)

    # Quest info (opaque to the engine)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    type = db.Column(db.String(20), default=QuestKind.READING.value, nullable=False)
    quest_type = db.Column(
        db.String(20), default=QuestType.DAILY.value, nullable=False, index=True
    )
    difficulty = db.Column(db.Integer, default=1, nullable=False)

    # Rewards (base amounts, before multipliers)
    xp_reward = db.Column(db.Integer, default=0, nullable=False)
    coin_reward = db.Column(db.Integer, default=0, nullable=False)

    # Requirements
    target_value = db.Column(db.Float, default=1, nullable=False)
    progress = db.Column(db.Float, default=0, nullable=False)

    # Status
    status = db.Column(
        db.String(20), default=QuestStatus.PENDING.value, nullable=False, index=True
    )
    completion_quality = db.Column(db.String(20), nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True, index=True)
    auto_renew = db.Column(db.Boolean, default=False, nullable=False)
    grace_period_minutes = db.Column(db.Integer, default=60, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    started_at = db.Column(db.DateTime, nullable=True)
    paused_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    failed_at = db.Column(db.DateTime, nullable=True)
    renewed_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    quest_metadata = db.relationship(
        "QuestMetadata",
        backref="quest",
        uselist=False,
        cascade="all, delete-orphan",
    )
    # History is append-only and outlives the quest row
    status_history = db.relationship(
        "QuestStatusHistory",
        backref="quest",
        lazy="dynamic",
        cascade="save-update, merge",
        passive_deletes="all",
        order_by="QuestStatusHistory.id",
    )

    @property
    def progress_percent(self) -> int:
        """Progress percentage, capped at 100."""
        if not self.target_value:
            return 0
        return min(round(self.progress / self.target_value * 100), 100)

    @property
    def is_target_reached(self) -> bool:
        return self.progress >= self.target_value

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        meta = self.quest_metadata
        return {
            "id": self.id,
            "user_id": self.user_id,
            "template_id": self.template_id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "quest_type": self.quest_type,
            "difficulty": self.difficulty,
            "xp_reward": self.xp_reward,
            "coin_reward": self.coin_reward,
            "target_value": self.target_value,
            "progress": self.progress,
            "progress_percent": self.progress_percent,
            "status": self.status,
            "completion_quality": self.completion_quality,
            "expires_at": isoformat(self.expires_at),
            "auto_renew": self.auto_renew,
            "grace_period_minutes": self.grace_period_minutes,
            "created_at": isoformat(self.created_at),
            "started_at": isoformat(self.started_at),
            "paused_at": isoformat(self.paused_at),
            "completed_at": isoformat(self.completed_at),
            "failed_at": isoformat(self.failed_at),
            "metadata": meta.to_dict() if meta else None,
        }

    def __repr__(self) -> str:
        return f"<Quest {self.id} {self.quest_type}:{self.status}>"


class QuestMetadata(db.Model):
    """Renewal schedule and streak state, 1:1 with a quest."""

    __tablename__ = "quest_metadata"

    id = db.Column(db.Integer, primary_key=True)
    quest_id = db.Column(
        db.Integer,
        db.ForeignKey("quests.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # {"interval": "daily", "time": "00:00", "day_of_week": 0, "day_of_month": 1}
    renewal_pattern = db.Column(db.JSON, nullable=True)
    # {"24h_before": true, "6h_before": true, ..., "expired": true}
    expiry_notifications = db.Column(db.JSON, nullable=True)

    streak_count = db.Column(db.Integer, default=0, nullable=False)
    bonus_multiplier = db.Column(db.Float, default=1.0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def to_dict(self) -> dict:
        return {
            "renewal_pattern": self.renewal_pattern,
            "expiry_notifications": self.expiry_notifications,
            "streak_count": self.streak_count,
            "bonus_multiplier": self.bonus_multiplier,
        }


class QuestStatusHistory(db.Model):
    """Append-only log of quest status changes."""

    __tablename__ = "quest_status_history"

    id = db.Column(db.Integer, primary_key=True)
    quest_id = db.Column(
        db.Integer,
        db.ForeignKey("quests.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    from_status = db.Column(db.String(20), nullable=False)
    to_status = db.Column(db.String(20), nullable=False)
    changed_by = db.Column(db.String(50), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    created_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False, index=True
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quest_id": self.quest_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by": self.changed_by,
            "reason": self.reason,
            "created_at": isoformat(self.created_at),
        }


# Quest templates
QUEST_TEMPLATES = {
    "daily_reading_timer": {
        "name": "Daily reading time",
        "description": "Read for a set amount of time every day",
        "category": "reading",
        "difficulty_range": (1, 3),
        "quest_type": QuestType.DAILY.value,
        "type": QuestKind.TIMER.value,
        "target_value_range": (15, 120),
        "xp_multiplier": 1.0,
        "coin_multiplier": 1.0,
        "requirements": {},
        "variables": {
            "duration": {"type": "number", "default": 30, "min": 15, "max": 120},
            "book_genre": {
                "type": "string",
                "default": "any genre",
                "options": [
                    "fiction",
                    "essays",
                    "self-help",
                    "science",
                    "history",
                    "philosophy",
                    "any genre",
                ],
            },
        },
        "title_template": "Read {book_genre} for {duration} minutes",
        "description_template": (
            "Spend {duration} focused minutes with a {book_genre} book."
        ),
    },
    "book_summary": {
        "name": "Reading summary",
        "description": "Summarize what you read to remember it better",
        "category": "writing",
        "difficulty_range": (2, 4),
        "quest_type": QuestType.DAILY.value,
        "type": QuestKind.SUMMARY.value,
        "target_value_range": (3, 10),
        "xp_multiplier": 1.5,
        "coin_multiplier": 1.2,
        "requirements": {"min_books": 1},
        "variables": {
            "sentence_count": {"type": "number", "default": 5, "min": 3, "max": 10},
            "summary_type": {
                "type": "string",
                "default": "key ideas",
                "options": [
                    "key ideas",
                    "impressions",
                    "favorite passages",
                    "lessons learned",
                ],
            },
        },
        "title_template": "Summarize {summary_type} in {sentence_count} sentences",
        "description_template": (
            "Write down the {summary_type} of your book in {sentence_count} sentences."
        ),
    },
    "reading_streak": {
        "name": "Reading streak",
        "description": "Read on consecutive days to build the habit",
        "category": "challenge",
        "difficulty_range": (3, 5),
        "quest_type": QuestType.STREAK.value,
        "type": QuestKind.CHALLENGE.value,
        "target_value_range": (3, 30),
        "xp_multiplier": 2.0,
        "coin_multiplier": 1.5,
        "requirements": {},
        "variables": {
            "streak_days": {"type": "number", "default": 7, "min": 3, "max": 30},
            "min_duration": {"type": "number", "default": 20, "min": 10, "max": 60},
        },
        "title_template": "{streak_days}-day reading streak",
        "description_template": (
            "Read at least {min_duration} minutes a day for {streak_days} days."
        ),
    },
    "genre_exploration": {
        "name": "Genre exploration",
        "description": "Read a book from a genre you have not tried",
        "category": "learning",
        "difficulty_range": (2, 4),
        "quest_type": QuestType.WEEKLY.value,
        "type": QuestKind.READING.value,
        "target_value_range": (1, 3),
        "xp_multiplier": 1.8,
        "coin_multiplier": 1.3,
        "requirements": {},
        "variables": {
            "target_genre": {
                "type": "string",
                "default": "science",
                "options": [
                    "science",
                    "philosophy",
                    "history",
                    "art",
                    "religion",
                    "politics",
                    "economics",
                ],
            },
            "book_count": {"type": "number", "default": 1, "min": 1, "max": 3},
        },
        "title_template": "Explore {target_genre}",
        "description_template": "Read {book_count} {target_genre} book(s) this week.",
    },
    "speed_reading": {
        "name": "Speed reading",
        "description": "Read many pages in limited time",
        "category": "challenge",
        "difficulty_range": (4, 5),
        "quest_type": QuestType.DAILY.value,
        "type": QuestKind.CHALLENGE.value,
        "target_value_range": (50, 200),
        "xp_multiplier": 1.5,
        "coin_multiplier": 1.4,
        "requirements": {"min_level": 3},
        "variables": {
            "page_count": {"type": "number", "default": 100, "min": 50, "max": 200},
            "time_limit": {"type": "number", "default": 60, "min": 30, "max": 120},
        },
        "title_template": "Read {page_count} pages in {time_limit} minutes",
        "description_template": (
            "Get through {page_count} pages within {time_limit} minutes."
        ),
    },
    "book_discussion": {
        "name": "Book discussion",
        "description": "Talk about a book with other readers",
        "category": "social",
        "difficulty_range": (3, 4),
        "quest_type": QuestType.WEEKLY.value,
        "type": QuestKind.CHALLENGE.value,
        "target_value_range": (1, 5),
        "xp_multiplier": 2.5,
        "coin_multiplier": 2.0,
        "requirements": {"min_books": 3},
        "variables": {
            "discussion_count": {"type": "number", "default": 2, "min": 1, "max": 5},
            "discussion_type": {
                "type": "string",
                "default": "online",
                "options": ["online", "in person", "with family", "with friends"],
            },
        },
        "title_template": "{discussion_count} {discussion_type} book discussions",
        "description_template": (
            "Join {discussion_count} {discussion_type} discussions about a book."
        ),
    },
    "morning_reading": {
        "name": "Morning reading",
        "description": "Start the day with a book",
        "category": "reading",
        "difficulty_range": (2, 4),
        "quest_type": QuestType.DAILY.value,
        "type": QuestKind.TIMER.value,
        "target_value_range": (15, 60),
        "xp_multiplier": 1.3,
        "coin_multiplier": 1.2,
        "requirements": {"time_of_day": "morning"},
        "variables": {
            "duration": {"type": "number", "default": 30, "min": 15, "max": 60},
            "start_time": {
                "type": "string",
                "default": "07:00",
                "options": ["06:00", "06:30", "07:00", "07:30", "08:00"],
            },
        },
        "title_template": "Morning reading: {duration} minutes from {start_time}",
        "description_template": "Read for {duration} minutes starting at {start_time}.",
    },
    "weekend_marathon": {
        "name": "Weekend reading marathon",
        "description": "A long reading session on the weekend",
        "category": "challenge",
        "difficulty_range": (4, 5),
        "quest_type": QuestType.WEEKLY.value,
        "type": QuestKind.TIMER.value,
        "target_value_range": (120, 480),
        "xp_multiplier": 2.0,
        "coin_multiplier": 1.8,
        # Saturday and Sunday (Monday=0)
        "requirements": {"day_of_week": [5, 6]},
        "variables": {
            "duration": {"type": "number", "default": 180, "min": 120, "max": 480},
            "break_interval": {"type": "number", "default": 60, "min": 30, "max": 90},
        },
        "title_template": "Weekend marathon: {duration} minutes",
        "description_template": (
            "Read for {duration} minutes, resting every {break_interval} minutes."
        ),
    },
}
