"""Achievement API endpoints."""

from flask import request

from bookquest.api import api_bp, get_clock
from bookquest.services import AchievementChecker
from bookquest.utils import success_response


@api_bp.route("/achievements", methods=["GET"])
def get_achievements():
    """Public achievement catalog. ``?category=reading`` filters."""
    category = request.args.get("category")
    if category:
        achievements = AchievementChecker.get_achievements_by_category(category)
    else:
        achievements = AchievementChecker.get_public_achievements()
    return success_response({"achievements": achievements})


@api_bp.route("/users/<int:user_id>/achievements", methods=["GET"])
def get_user_achievements(user_id: int):
    data = AchievementChecker(clock=get_clock()).get_user_achievements(user_id)
    return success_response(data)


@api_bp.route("/users/<int:user_id>/achievements/check", methods=["POST"])
def check_user_achievements(user_id: int):
    """Unlock every achievement the user currently qualifies for."""
    unlocked = AchievementChecker(clock=get_clock()).check_and_unlock(user_id)
    return success_response({"unlocked": unlocked})
