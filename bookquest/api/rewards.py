"""User progress and reward API endpoints."""

from flask import request

from bookquest.api import api_bp, get_clock
from bookquest.services import LevelService, RewardService
from bookquest.utils import success_response


@api_bp.route("/users/<int:user_id>/progress", methods=["GET"])
def get_user_progress(user_id: int):
    """XP, level, coins, streaks, badges and recent rewards."""
    summary = RewardService(clock=get_clock()).get_user_summary(user_id)
    return success_response({"progress": summary})


@api_bp.route("/users/<int:user_id>/rewards", methods=["GET"])
def get_reward_history(user_id: int):
    limit = min(request.args.get("limit", 10, type=int), 100)
    history = RewardService(clock=get_clock()).get_reward_history(user_id, limit)
    return success_response({"rewards": history})


@api_bp.route("/users/<int:user_id>/badges", methods=["GET"])
def get_user_badges(user_id: int):
    badges = RewardService(clock=get_clock()).get_user_badges(user_id)
    return success_response({"badges": badges})


@api_bp.route("/levels/<int:level>", methods=["GET"])
def get_level_info(level: int):
    """XP threshold and level-up reward for a level."""
    level = max(level, 1)
    return success_response(
        {
            "level": level,
            "required_xp": LevelService.get_required_xp(level),
            "reward": LevelService.calculate_level_up_reward(level),
        }
    )
