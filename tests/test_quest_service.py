"""Tests for quest templates and quest creation."""

import random
from datetime import UTC, datetime

import pytest

from bookquest.errors import UnknownTemplate
from bookquest.models.quest import QUEST_TEMPLATES
from bookquest.services.quest_service import (
    TEMPLATES,
    generate_quest_from_template,
    time_of_day,
)

MONDAY_NOON = datetime(2024, 6, 3, 12, 0, tzinfo=UTC)


class TestTemplates:
    """Test cases for template expansion."""

    @pytest.mark.parametrize(
        "hour,bucket",
        [(3, "night"), (6, "morning"), (12, "afternoon"), (18, "evening"), (22, "night")],
    )
    def test_time_of_day(self, hour, bucket):
        assert time_of_day(hour) == bucket

    def test_generate_clamps_and_defaults_variables(self):
        generated = generate_quest_from_template(
            TEMPLATES["daily_reading_timer"],
            {"duration": 500, "book_genre": "comics"},
        )
        quest = generated["quest"]

        assert quest["target_value"] == 120
        assert quest["title"] == "Read any genre for 120 minutes"
        assert quest["difficulty"] == 1
        assert quest["xp_reward"] == 10
        assert quest["coin_reward"] == 5
        assert quest["auto_renew"] is True
        assert generated["metadata"]["renewal_pattern"]["interval"] == "daily"

    def test_difficulty_follows_level(self):
        generated = generate_quest_from_template(
            TEMPLATES["reading_streak"], user_level=10
        )
        quest = generated["quest"]
        assert quest["difficulty"] == 5
        assert quest["xp_reward"] == 100
        assert quest["auto_renew"] is False

    def test_target_falls_back_to_range_midpoint(self):
        generated = generate_quest_from_template(TEMPLATES["reading_streak"])
        assert generated["quest"]["target_value"] == 16

    def test_available_templates(self, quest_service):
        available = quest_service.get_available_templates(1, 0, local_now=MONDAY_NOON)
        assert {t["id"] for t in available} == {
            "daily_reading_timer",
            "reading_streak",
            "genre_exploration",
        }

    def test_weekend_and_level_requirements(self, quest_service):
        saturday_morning = datetime(2024, 6, 8, 8, 0, tzinfo=UTC)
        available = quest_service.get_available_templates(
            3, 3, local_now=saturday_morning
        )
        ids = {t["id"] for t in available}
        assert {"speed_reading", "weekend_marathon", "morning_reading"} <= ids
        assert "book_discussion" in ids

    def test_local_time_is_required(self, quest_service):
        with pytest.raises(TypeError):
            quest_service.get_available_templates(1, 0)

    def test_user_templates_follow_user_timezone(self, quest_service, clock, user):
        # Sunday 23:00 UTC is Monday 08:00 in Seoul
        clock.current = datetime(2024, 6, 2, 23, 0, tzinfo=UTC)

        clock.timezone = "UTC"
        ids = {t["id"] for t in quest_service.get_available_templates_for_user(user)}
        assert "morning_reading" not in ids

        clock.timezone = "Asia/Seoul"
        ids = {t["id"] for t in quest_service.get_available_templates_for_user(user)}
        assert "morning_reading" in ids

    def test_get_template_returns_copy(self, quest_service):
        template = quest_service.get_template("book_summary")
        template["variables"].clear()
        assert TEMPLATES["book_summary"]["variables"]

    def test_unknown_template(self, quest_service):
        with pytest.raises(UnknownTemplate):
            quest_service.get_template("missing")

    def test_all_templates(self, quest_service):
        assert len(quest_service.get_all_templates()) == len(QUEST_TEMPLATES)


class TestCreateQuest:
    """Test cases for creating quests."""

    def test_create_from_template(self, quest_service, user):
        quest = quest_service.create_quest(
            user, "daily_reading_timer", {"duration": 45}
        )

        assert quest.status == "pending"
        assert quest.target_value == 45
        assert quest.to_dict()["expires_at"] == "2024-06-04T00:00:00+00:00"
        assert quest.quest_metadata.expiry_notifications["expired"] is True

    def test_unmet_requirements_lock_quest(self, quest_service, user):
        quest = quest_service.create_quest(user, "book_summary")
        assert quest.status == "locked"

    def test_expiry_in_user_timezone(self, quest_service, user, clock):
        clock.timezone = "Asia/Seoul"
        quest = quest_service.create_quest(user, "daily_reading_timer")
        # Monday 21:00 in Seoul, so the quest ends at Tuesday midnight there
        assert quest.to_dict()["expires_at"] == "2024-06-03T15:00:00+00:00"

    def test_create_custom_quest(self, quest_service, user):
        quest = quest_service.create_custom_quest(
            user,
            title="Finish chapter 3",
            quest_type="weekly",
            target_value=1,
            xp_reward=40,
            ignored="value",
        )
        assert quest.status == "pending"
        assert quest.xp_reward == 40
        assert quest.quest_metadata.renewal_pattern["interval"] == "weekly"

    def test_list_user_quests_by_status(self, quest_service, user):
        quest_service.create_quest(user, "daily_reading_timer")
        quest_service.create_quest(user, "book_summary")

        locked = quest_service.list_user_quests(user, ["locked"])
        assert [q.template_id for q in locked] == ["book_summary"]
        assert len(quest_service.list_user_quests(user)) == 2

    def test_balanced_pick_covers_categories(self, quest_service, user):
        picked = quest_service.pick_balanced_templates(
            user, count=3, rng=random.Random(1)
        )
        assert {t["category"] for t in picked} == {"reading", "challenge", "learning"}

    def test_balanced_pick_prefers_unused_category(self, quest_service, user):
        picked = quest_service.pick_balanced_templates(
            user,
            count=1,
            recent_categories=["reading", "challenge"],
            rng=random.Random(1),
        )
        assert [t["category"] for t in picked] == ["learning"]
