"""Achievement awards and the achievement catalog table."""

from datetime import datetime

from bookquest import db
from bookquest.utils.timeutil import isoformat


class AchievementAward(db.Model):
    """Achievement earned by a user. At most one row per pair."""

    __tablename__ = "achievement_awards"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    achievement_id = db.Column(db.String(50), nullable=False)
    earned_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "achievement_id", name="unique_user_achievement"
        ),
    )

    def to_dict(self) -> dict:
        return {
            "achievement_id": self.achievement_id,
            "earned_at": isoformat(self.earned_at),
        }

    def __repr__(self) -> str:
        return f"<AchievementAward {self.user_id}:{self.achievement_id}>"


# Achievement catalog. Each entry carries exactly one condition, interpreted
# by AchievementChecker according to condition["type"].
ACHIEVEMENTS = [
    # === Reading ===
    {
        "id": "first_book",
        "name": "First Book",
        "description": "Register your first book",
        "icon": "books",
        "category": "reading",
        "kind": "milestone",
        "rarity": "bronze",
        "condition": {"type": "books_read", "value": 1},
        "rewards": {"xp": 50, "coins": 25},
        "unlock_message": "Your reading journey has begun!",
    },
    {
        "id": "bookworm",
        "name": "Bookworm",
        "description": "Register 10 books",
        "icon": "bug",
        "category": "reading",
        "kind": "milestone",
        "rarity": "silver",
        "condition": {"type": "books_read", "value": 10},
        "rewards": {"xp": 200, "coins": 100},
        "unlock_message": "A true bookworm!",
    },
    {
        "id": "library_master",
        "name": "Library Master",
        "description": "Register 50 books",
        "icon": "library",
        "category": "reading",
        "kind": "milestone",
        "rarity": "gold",
        "condition": {"type": "books_read", "value": 50},
        "rewards": {"xp": 500, "coins": 300, "title": "Library Master"},
        "unlock_message": "You have built your own library!",
    },
    {
        "id": "speed_reader",
        "name": "Speed Reader",
        "description": "Read more than 100 pages in an hour",
        "icon": "bolt",
        "category": "reading",
        "kind": "challenge",
        "rarity": "gold",
        "condition": {"type": "speed_reading", "params": {"pages_per_hour": 100}},
        "rewards": {"xp": 300, "coins": 150, "title": "Speed Reader"},
        "unlock_message": "Lightning-fast reading!",
    },
    {
        "id": "marathon_reader",
        "name": "Marathon Reader",
        "description": "Spend 100 hours reading",
        "icon": "hourglass",
        "category": "reading",
        "kind": "milestone",
        "rarity": "platinum",
        "condition": {"type": "time_spent", "value": 6000},
        "rewards": {"xp": 800, "coins": 400},
        "unlock_message": "One hundred hours between the pages!",
    },
    {
        "id": "genre_explorer",
        "name": "Genre Explorer",
        "description": "Read books from 5 different genres",
        "icon": "map",
        "category": "reading",
        "kind": "challenge",
        "rarity": "silver",
        "condition": {"type": "genre_diversity", "value": 5},
        "rewards": {"xp": 200, "coins": 100},
        "unlock_message": "An adventurer across genres!",
    },
    # === Quests ===
    {
        "id": "quest_beginner",
        "name": "Quest Beginner",
        "description": "Complete your first quest",
        "icon": "target",
        "category": "quests",
        "kind": "milestone",
        "rarity": "bronze",
        "condition": {"type": "quests_completed", "value": 1},
        "rewards": {"xp": 30, "coins": 15},
        "unlock_message": "The quest adventure begins!",
    },
    {
        "id": "quest_master",
        "name": "Quest Master",
        "description": "Complete 100 quests",
        "icon": "medal",
        "category": "quests",
        "kind": "milestone",
        "rarity": "platinum",
        "condition": {"type": "quests_completed", "value": 100},
        "rewards": {"xp": 1000, "coins": 500, "title": "Quest Master"},
        "unlock_message": "A true master of quests!",
    },
    {
        "id": "perfectionist",
        "name": "Perfectionist",
        "description": "Complete 10 quests in a row with a perfect result",
        "icon": "gem",
        "category": "quests",
        "kind": "challenge",
        "rarity": "diamond",
        "condition": {"type": "perfectionist", "params": {"consecutive_perfect": 10}},
        "rewards": {"xp": 800, "coins": 400, "title": "Perfectionist"},
        "unlock_message": "Flawless execution!",
    },
    {
        "id": "level_10",
        "name": "Seasoned Reader",
        "description": "Reach level 10",
        "icon": "star",
        "category": "quests",
        "kind": "milestone",
        "rarity": "silver",
        "condition": {"type": "level_reached", "value": 10},
        "rewards": {"xp": 0, "coins": 200},
        "unlock_message": "Level 10 reached!",
    },
    # === Streaks ===
    {
        "id": "streak_week",
        "name": "One Week Streak",
        "description": "Read 7 days in a row",
        "icon": "fire",
        "category": "time",
        "kind": "streak",
        "rarity": "bronze",
        "condition": {"type": "streak_days", "value": 7},
        "rewards": {"xp": 150, "coins": 75},
        "unlock_message": "A week-long reading habit!",
    },
    {
        "id": "streak_month",
        "name": "One Month Streak",
        "description": "Read 30 days in a row",
        "icon": "glowing_star",
        "category": "time",
        "kind": "streak",
        "rarity": "gold",
        "condition": {"type": "streak_days", "value": 30},
        "rewards": {"xp": 600, "coins": 300, "title": "Steady Reader"},
        "unlock_message": "A whole month of reading!",
    },
    {
        "id": "streak_year",
        "name": "One Year Streak",
        "description": "Read 365 days in a row",
        "icon": "crown",
        "category": "time",
        "kind": "streak",
        "rarity": "diamond",
        "condition": {"type": "streak_days", "value": 365},
        "rewards": {"xp": 3650, "coins": 1825, "title": "Reading Legend"},
        "unlock_message": "A legendary reading streak!",
    },
    # === Time of day ===
    {
        "id": "early_bird",
        "name": "Early Bird",
        "description": "Start reading before 6 AM",
        "icon": "bird",
        "category": "time",
        "kind": "challenge",
        "rarity": "silver",
        "condition": {"type": "early_bird", "params": {"before_hour": 6}},
        "rewards": {"xp": 100, "coins": 50},
        "unlock_message": "Enjoying the quiet of dawn!",
    },
    {
        "id": "night_owl",
        "name": "Night Owl",
        "description": "Read after 11 PM",
        "icon": "owl",
        "category": "time",
        "kind": "challenge",
        "rarity": "silver",
        "condition": {"type": "night_owl", "params": {"after_hour": 23}},
        "rewards": {"xp": 100, "coins": 50},
        "unlock_message": "Reading in the still of the night!",
    },
    {
        "id": "weekend_warrior",
        "name": "Weekend Warrior",
        "description": "Read twice as many pages on weekends as on weekdays",
        "icon": "swords",
        "category": "time",
        "kind": "challenge",
        "rarity": "gold",
        "condition": {"type": "weekend_warrior", "params": {"multiplier": 2}},
        "rewards": {"xp": 250, "coins": 125},
        "unlock_message": "Weekends well spent!",
    },
    # === Secret ===
    {
        "id": "midnight_reader",
        "name": "Midnight Reader",
        "description": "Start reading exactly at midnight",
        "icon": "clock12",
        "category": "special",
        "kind": "hidden",
        "rarity": "platinum",
        "condition": {"type": "early_bird", "params": {"exact_hour": 0}},
        "rewards": {"xp": 500, "coins": 250, "title": "Midnight Reader"},
        "is_secret": True,
        "unlock_message": "You found the mysterious midnight hour!",
    },
    {
        "id": "page_turner",
        "name": "Page Turner",
        "description": "Read 1000 pages in a single day",
        "icon": "page",
        "category": "reading",
        "kind": "hidden",
        "rarity": "diamond",
        "condition": {"type": "pages_read", "value": 1000, "timeframe": "daily"},
        "rewards": {"xp": 1000, "coins": 500, "title": "Page Turner"},
        "is_secret": True,
        "unlock_message": "Astonishing reading speed!",
    },
]
