"""Quest API endpoints."""

from flask import request

from bookquest.api import api_bp, cron_authorized, get_clock
from bookquest.models.quest import QuestStatus, QuestType
from bookquest.services import EventService, QuestLifecycle, QuestService
from bookquest.services.quest_schedule import expiry_risk_level
from bookquest.services.reward_calculator import CompletionQuality
from bookquest.utils import success_response, unauthorized, validation_error

QUALITIES = [q.value for q in CompletionQuality]


@api_bp.route("/quests/templates", methods=["GET"])
def get_quest_templates():
    """
    List quest templates.

    Query params:
    - user_id: only templates the user can start right now
    - category: filter by category
    """
    service = QuestService(clock=get_clock())
    user_id = request.args.get("user_id", type=int)
    category = request.args.get("category")

    if user_id is not None:
        templates = service.get_available_templates_for_user(user_id)
    else:
        templates = service.get_all_templates()
    if category:
        templates = [t for t in templates if t["category"] == category]

    return success_response({"templates": templates})


@api_bp.route("/users/<int:user_id>/quests", methods=["POST"])
def create_quest(user_id: int):
    """
    Create a quest.

    Request body (from a template):
    {
        "template_id": "daily_reading_timer",
        "variables": {"duration": 45}
    }

    Or a custom quest:
    {
        "title": "Read 20 pages",
        "quest_type": "daily",
        "difficulty": 2,
        "target_value": 20
    }
    """
    data = request.get_json(silent=True)
    if not data:
        return validation_error({"body": "Request body is required"})

    service = QuestService(clock=get_clock())

    template_id = data.get("template_id")
    if template_id:
        variables = data.get("variables") or {}
        if not isinstance(variables, dict):
            return validation_error({"variables": "Must be an object"})
        quest = service.create_quest(user_id, template_id, variables)
        return success_response({"quest": quest.to_dict()}, status_code=201)

    title = (data.get("title") or "").strip()
    if not title:
        return validation_error({"title": "Title or template_id is required"})

    quest_type = data.get("quest_type", QuestType.DAILY.value)
    if quest_type not in [t.value for t in QuestType]:
        return validation_error({"quest_type": "Unknown quest type"})

    try:
        difficulty = int(data.get("difficulty", 1))
        target_value = float(data.get("target_value", 1))
        xp_reward = int(data.get("xp_reward", 0))
        coin_reward = int(data.get("coin_reward", 0))
    except (TypeError, ValueError):
        return validation_error({"body": "Numeric fields must be numbers"})

    if not 1 <= difficulty <= 5:
        return validation_error({"difficulty": "Must be between 1 and 5"})
    if target_value <= 0 or xp_reward < 0 or coin_reward < 0:
        return validation_error({"body": "Target must be positive, rewards >= 0"})

    quest = service.create_custom_quest(
        user_id,
        title=title,
        description=data.get("description"),
        type=data.get("type", "reading"),
        quest_type=quest_type,
        difficulty=difficulty,
        target_value=target_value,
        xp_reward=xp_reward,
        coin_reward=coin_reward,
        auto_renew=bool(data.get("auto_renew", False)),
    )
    return success_response({"quest": quest.to_dict()}, status_code=201)


@api_bp.route("/users/<int:user_id>/quests", methods=["GET"])
def list_user_quests(user_id: int):
    """List a user's quests. ``?status=active,paused`` filters by status."""
    statuses = [s for s in request.args.get("status", "").split(",") if s]
    quests = QuestService(clock=get_clock()).list_user_quests(user_id, statuses)
    return success_response({"quests": [q.to_dict() for q in quests]})


@api_bp.route("/quests/<int:quest_id>", methods=["GET"])
def get_quest(quest_id: int):
    clock = get_clock()
    quest = QuestLifecycle(clock=clock).get_quest(quest_id)
    data = quest.to_dict()
    data["expiry_risk"] = expiry_risk_level(quest.expires_at, clock.now())
    return success_response({"quest": data})


@api_bp.route("/quests/<int:quest_id>/status", methods=["PATCH"])
def update_quest_status(quest_id: int):
    """
    Change quest status.

    Request body:
    {
        "status": "active",
        "reason": "Started reading",
        "completion_quality": "good"
    }
    """
    data = request.get_json(silent=True) or {}
    new_status = data.get("status")
    if new_status not in [s.value for s in QuestStatus]:
        return validation_error({"status": "Unknown status"})

    quality = data.get("completion_quality", CompletionQuality.NORMAL.value)
    if quality not in QUALITIES:
        return validation_error({"completion_quality": f"One of {QUALITIES}"})

    lifecycle = QuestLifecycle(clock=get_clock())
    quest = lifecycle.get_quest(quest_id)
    result = lifecycle.transition(
        quest, new_status, reason=data.get("reason"), completion_quality=quality
    )
    return success_response(result.to_dict())


@api_bp.route("/quests/<int:quest_id>/progress", methods=["POST"])
def update_quest_progress(quest_id: int):
    """
    Add progress to an active quest.

    Request body:
    {
        "amount": 10
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        amount = float(data.get("amount"))
    except (TypeError, ValueError):
        return validation_error({"amount": "Must be a number"})

    lifecycle = QuestLifecycle(clock=get_clock())
    quest = lifecycle.update_progress(lifecycle.get_quest(quest_id), amount)
    return success_response({"quest": quest.to_dict()})


@api_bp.route("/quests/<int:quest_id>/complete", methods=["POST"])
def complete_quest(quest_id: int):
    """
    Complete a quest and collect its reward.

    Request body:
    {
        "completion_quality": "perfect"
    }
    """
    data = request.get_json(silent=True) or {}
    quality = data.get("completion_quality", CompletionQuality.NORMAL.value)
    if quality not in QUALITIES:
        return validation_error({"completion_quality": f"One of {QUALITIES}"})

    result = EventService(clock=get_clock()).quest_completed(quest_id, quality)
    return success_response(result)


@api_bp.route("/quests/<int:quest_id>/history", methods=["GET"])
def get_quest_history(quest_id: int):
    history = QuestLifecycle(clock=get_clock()).get_history(quest_id)
    return success_response({"history": history})


@api_bp.route("/quests/expire", methods=["POST"])
def expire_quests():
    """Expire or renew overdue quests. Called by cron with X-Cron-Secret."""
    if not cron_authorized():
        return unauthorized("Invalid cron secret")

    summary = QuestLifecycle(clock=get_clock()).expire_overdue()
    return success_response(summary)


@api_bp.route("/quests/expiry-warnings", methods=["POST"])
def scan_expiry_warnings():
    """Select and record due expiry warnings. Called by cron."""
    if not cron_authorized():
        return unauthorized("Invalid cron secret")

    warnings = QuestLifecycle(clock=get_clock()).due_expiry_warnings()
    return success_response({"warnings": warnings, "count": len(warnings)})
