"""JSON envelope helpers shared by every endpoint."""

from typing import Any

from flask import jsonify

from bookquest.errors import (
    BookNotFound,
    GamificationError,
    QuestNotFound,
    StorageConflict,
    UnknownAchievement,
    UnknownTemplate,
)

NOT_FOUND_ERRORS = (QuestNotFound, BookNotFound, UnknownTemplate, UnknownAchievement)

# Seconds a client should wait before repeating a conflicted write
CONFLICT_RETRY_AFTER = 1


def success_response(data: Any = None, status_code: int = 200):
    """Wrap ``data`` in a success envelope."""
    body = {"success": True}
    if data is not None:
        body["data"] = data
    return jsonify(body), status_code


def error_response(
    code: str,
    message: str,
    details: dict | None = None,
    status_code: int = 400,
    retryable: bool = False,
):
    body = {
        "success": False,
        "error": {"code": code, "message": message, "retryable": retryable},
    }
    if details:
        body["error"]["details"] = details
    return jsonify(body), status_code


def engine_error(error: GamificationError):
    """
    Envelope for an engine error.

    Lookups of unknown quests, books, templates or achievements map to 404,
    lost races to 409 with ``Retry-After``, every other rule violation to 400.
    """
    if isinstance(error, NOT_FOUND_ERRORS):
        status_code = 404
    elif isinstance(error, StorageConflict):
        status_code = 409
    else:
        status_code = 400

    response, status_code = error_response(
        error.code,
        error.message,
        error.details,
        status_code=status_code,
        retryable=error.is_retryable,
    )
    if error.is_retryable:
        response.headers["Retry-After"] = str(CONFLICT_RETRY_AFTER)
    return response, status_code


def unauthorized(message: str = "Unauthorized"):
    return error_response("UNAUTHORIZED", message, status_code=401)


def validation_error(details: dict):
    """400 with per-field messages."""
    return error_response(
        "VALIDATION_ERROR", "Invalid input data", details, status_code=400
    )
