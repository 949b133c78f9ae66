"""Quest template and quest creation service."""

import copy
import logging
import random
from collections import Counter
from datetime import datetime
from types import MappingProxyType

from bookquest.clock import Clock, SystemClock
from bookquest.config import get_setting
from bookquest.errors import UnknownTemplate
from bookquest.models.quest import QUEST_TEMPLATES, Quest, QuestStatus, QuestType
from bookquest.services.quest_schedule import (
    DEFAULT_EXPIRY_NOTIFICATIONS,
    calculate_expiry_time,
    renewal_pattern_for,
)
from bookquest.storage import SQLAlchemyStorage, StorageAdapter
from bookquest.utils.timeutil import local_time, to_storage

logger = logging.getLogger(__name__)

# Read-only view of the template table, keyed by template id
TEMPLATES = MappingProxyType(
    {template_id: {"id": template_id, **t} for template_id, t in QUEST_TEMPLATES.items()}
)

# Variables that become the quest target, in priority order
TARGET_VARIABLES = ("duration", "sentence_count", "page_count", "book_count")

CUSTOM_QUEST_FIELDS = (
    "title",
    "description",
    "type",
    "quest_type",
    "difficulty",
    "target_value",
    "xp_reward",
    "coin_reward",
    "auto_renew",
    "grace_period_minutes",
)


def time_of_day(hour: int) -> str:
    """Bucket a local hour into night, morning, afternoon or evening."""
    if hour < 6:
        return "night"
    if hour < 12:
        return "morning"
    if hour < 18:
        return "afternoon"
    if hour < 22:
        return "evening"
    return "night"


def _resolve_variables(template: dict, variables: dict) -> dict:
    resolved = {}
    for key, config in template["variables"].items():
        value = variables.get(key, config["default"])
        if config["type"] == "number":
            try:
                value = int(value)
            except (TypeError, ValueError):
                value = config["default"]
            value = max(config.get("min", value), min(value, config.get("max", value)))
        elif "options" in config and value not in config["options"]:
            value = config["default"]
        resolved[key] = value
    return resolved


def generate_quest_from_template(
    template: dict, variables: dict | None = None, user_level: int = 1
) -> dict:
    """
    Build quest fields from a template.

    Difficulty follows the user's level within the template's range; rewards
    scale with difficulty and the template multipliers.
    """
    resolved = _resolve_variables(template, variables or {})

    min_diff, max_diff = template["difficulty_range"]
    difficulty = min(max_diff, max(min_diff, user_level // 2 + 1))

    min_target, max_target = template["target_value_range"]
    target_value = next(
        (resolved[key] for key in TARGET_VARIABLES if resolved.get(key)),
        (min_target + max_target) // 2,
    )

    quest_type = template["quest_type"]
    weekly_reset_day = get_setting("WEEKLY_RESET_DAY", 6)
    return {
        "quest": {
            "template_id": template["id"],
            "title": template["title_template"].format(**resolved),
            "description": template["description_template"].format(**resolved),
            "type": template["type"],
            "quest_type": quest_type,
            "difficulty": difficulty,
            "target_value": target_value,
            "xp_reward": round(difficulty * 10 * template["xp_multiplier"]),
            "coin_reward": round(difficulty * 5 * template["coin_multiplier"]),
            "auto_renew": quest_type == QuestType.DAILY.value,
            "grace_period_minutes": get_setting("DEFAULT_GRACE_PERIOD_MINUTES", 60),
        },
        "metadata": {
            "renewal_pattern": renewal_pattern_for(quest_type, weekly_reset_day)
            or {"interval": "daily", "time": "00:00"},
            "expiry_notifications": dict(DEFAULT_EXPIRY_NOTIFICATIONS),
            "streak_count": 0,
            "bonus_multiplier": 1.0,
        },
    }


class QuestService:
    """Service for quest templates and quest creation."""

    def __init__(
        self, storage: StorageAdapter | None = None, clock: Clock | None = None
    ):
        self.storage = storage or SQLAlchemyStorage()
        self.clock = clock or SystemClock()

    def get_template(self, template_id: str) -> dict:
        template = TEMPLATES.get(template_id)
        if template is None:
            raise UnknownTemplate(template_id)
        return copy.deepcopy(template)

    def get_all_templates(self) -> list[dict]:
        return [copy.deepcopy(t) for t in TEMPLATES.values()]

    @staticmethod
    def requirements_met(
        template: dict,
        level: int,
        book_count: int,
        completed_templates: set[str],
        local_now: datetime,
    ) -> bool:
        req = template.get("requirements") or {}
        if level < req.get("min_level", 1):
            return False
        if book_count < req.get("min_books", 0):
            return False
        if not set(req.get("completed_quests", ())) <= completed_templates:
            return False
        if "time_of_day" in req and time_of_day(local_now.hour) != req["time_of_day"]:
            return False
        if "day_of_week" in req and local_now.weekday() not in req["day_of_week"]:
            return False
        return True

    def get_available_templates(
        self,
        level: int,
        book_count: int,
        completed_templates: set[str] | None = None,
        *,
        local_now: datetime,
    ) -> list[dict]:
        """
        Templates whose requirements the user currently meets.

        ``local_now`` is the user's wall time; time-of-day and weekday
        requirements are checked against it.
        """
        completed_templates = completed_templates or set()
        return [
            copy.deepcopy(t)
            for t in TEMPLATES.values()
            if self.requirements_met(t, level, book_count, completed_templates, local_now)
        ]

    def _user_context(self, user_id: int) -> dict:
        now = self.clock.now()
        progress = self.storage.read_user_progress(user_id, now=now)
        timezone = self.clock.timezone_of(user_id)
        return {
            "level": progress.level,
            "book_count": self.storage.count_books(user_id),
            "completed_templates": self.storage.completed_template_ids(user_id),
            "now": now,
            "timezone": timezone,
            "local_now": local_time(now, timezone),
        }

    def get_available_templates_for_user(self, user_id: int) -> list[dict]:
        ctx = self._user_context(user_id)
        return self.get_available_templates(
            ctx["level"],
            ctx["book_count"],
            ctx["completed_templates"],
            local_now=ctx["local_now"],
        )

    def create_quest(
        self, user_id: int, template_id: str, variables: dict | None = None
    ) -> Quest:
        """
        Create a quest for the user from a template.

        The quest starts ``locked`` when the template requirements are not
        met yet.
        """
        template = self.get_template(template_id)
        ctx = self._user_context(user_id)
        generated = generate_quest_from_template(template, variables, ctx["level"])

        unlocked = self.requirements_met(
            template,
            ctx["level"],
            ctx["book_count"],
            ctx["completed_templates"],
            ctx["local_now"],
        )
        status = QuestStatus.PENDING.value if unlocked else QuestStatus.LOCKED.value

        fields = generated["quest"]
        fields.update(
            user_id=user_id,
            status=status,
            progress=0,
            created_at=to_storage(ctx["now"]),
            expires_at=to_storage(
                calculate_expiry_time(
                    fields["quest_type"],
                    ctx["timezone"],
                    ctx["now"],
                    get_setting("WEEKLY_RESET_DAY", 6),
                )
            ),
        )

        with self.storage.transaction():
            quest = self.storage.create_quest(fields, generated["metadata"])

        logger.info(
            f"Created {status} quest {quest.id} from template {template_id} "
            f"for user {user_id}"
        )
        return quest

    def list_user_quests(
        self, user_id: int, statuses: list[str] | None = None
    ) -> list[Quest]:
        return self.storage.list_user_quests(user_id, statuses or None)

    def create_custom_quest(self, user_id: int, **fields) -> Quest:
        """Create a quest from explicit fields, without a template."""
        now = self.clock.now()
        timezone = self.clock.timezone_of(user_id)
        quest_fields = {k: v for k, v in fields.items() if k in CUSTOM_QUEST_FIELDS}
        quest_type = quest_fields.setdefault("quest_type", QuestType.DAILY.value)
        quest_fields.setdefault(
            "grace_period_minutes", get_setting("DEFAULT_GRACE_PERIOD_MINUTES", 60)
        )
        quest_fields.update(
            user_id=user_id,
            status=QuestStatus.PENDING.value,
            progress=0,
            created_at=to_storage(now),
            expires_at=to_storage(
                calculate_expiry_time(
                    quest_type, timezone, now, get_setting("WEEKLY_RESET_DAY", 6)
                )
            ),
        )
        metadata = {
            "renewal_pattern": renewal_pattern_for(
                quest_type, get_setting("WEEKLY_RESET_DAY", 6)
            ),
            "expiry_notifications": dict(DEFAULT_EXPIRY_NOTIFICATIONS),
        }

        with self.storage.transaction():
            quest = self.storage.create_quest(quest_fields, metadata)

        logger.info(f"Created custom quest {quest.id} for user {user_id}")
        return quest

    def pick_balanced_templates(
        self,
        user_id: int,
        count: int = 3,
        recent_categories: list[str] | tuple = (),
        rng: random.Random | None = None,
    ) -> list[dict]:
        """
        Pick up to ``count`` available templates, one category at a time,
        least recently used categories first.
        """
        rng = rng or random.Random()
        usage = Counter(recent_categories)

        by_category: dict[str, list[dict]] = {}
        for template in self.get_available_templates_for_user(user_id):
            by_category.setdefault(template["category"], []).append(template)
        if not by_category:
            return []

        categories = sorted(by_category, key=lambda c: usage[c])
        selected = []
        for i in range(count):
            pool = [
                t
                for t in by_category[categories[i % len(categories)]]
                if t["id"] not in {s["id"] for s in selected}
            ]
            if pool:
                selected.append(rng.choice(pool))
        return selected
