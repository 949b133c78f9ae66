"""Level math and level-up rewards."""


class LevelService:
    """Pure functions mapping cumulative XP to levels."""

    XP_PER_LEVEL = 100
    LEVEL_UP_COINS_PER_LEVEL = 25

    # Milestone levels override the coin bonus and grant one badge
    MILESTONES = {
        5: {"coins": 100, "badge": "Reading Novice"},
        10: {"coins": 200, "badge": "Book Lover"},
        15: {"coins": 300, "badge": "Reading Enthusiast"},
        20: {"coins": 500, "badge": "Book Master"},
        25: {"coins": 750, "badge": "Reading Legend"},
        30: {"coins": 1000, "badge": "Ultimate Reader"},
    }

    @classmethod
    def calculate_level(cls, xp: int) -> int:
        """Calculate level from XP. Level 1 starts at 0 XP."""
        return max(xp, 0) // cls.XP_PER_LEVEL + 1

    @classmethod
    def get_required_xp(cls, level: int) -> int:
        """XP needed to reach the start of ``level``."""
        return (max(level, 1) - 1) * cls.XP_PER_LEVEL

    @classmethod
    def get_xp_to_next_level(cls, xp: int) -> int:
        return cls.calculate_level(xp) * cls.XP_PER_LEVEL - xp

    @classmethod
    def get_level_progress(cls, xp: int) -> float:
        """Percentage of the way through the current level."""
        return (max(xp, 0) % cls.XP_PER_LEVEL) / cls.XP_PER_LEVEL * 100

    @classmethod
    def calculate_level_up_reward(cls, new_level: int) -> dict:
        """
        Reward for reaching ``new_level``.
        Coins only: leveling up never grants XP.
        """
        milestone = cls.MILESTONES.get(new_level)
        if milestone:
            return {"xp": 0, "coins": milestone["coins"], "badges": [milestone["badge"]]}
        return {
            "xp": 0,
            "coins": new_level * cls.LEVEL_UP_COINS_PER_LEVEL,
            "badges": [],
        }
