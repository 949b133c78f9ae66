"""Reading session and book API endpoints."""

from datetime import datetime

from flask import request

from bookquest.api import api_bp, get_clock
from bookquest.services import EventService
from bookquest.utils import success_response, validation_error


def _parse_datetime(value):
    if value is None:
        return None
    return datetime.fromisoformat(value)


@api_bp.route("/users/<int:user_id>/reading-sessions", methods=["POST"])
def end_reading_session(user_id: int):
    """
    Report a finished reading session.

    Request body:
    {
        "session_id": 42,
        "book_id": 7,
        "duration_minutes": 45,
        "focus_score": 80,
        "pages_read": 30,
        "started_at": "2024-01-01T21:00:00+09:00"
    }
    """
    data = request.get_json(silent=True)
    if not data:
        return validation_error({"body": "Request body is required"})

    try:
        duration = int(data.get("duration_minutes", 0))
        focus_score = int(data.get("focus_score", 0))
        pages_read = int(data.get("pages_read", 0))
    except (TypeError, ValueError):
        return validation_error({"body": "Numeric fields must be integers"})

    if duration < 0 or pages_read < 0 or not 0 <= focus_score <= 100:
        return validation_error(
            {"body": "Duration and pages must be >= 0, focus_score 0-100"}
        )

    try:
        started_at = _parse_datetime(data.get("started_at"))
        ended_at = _parse_datetime(data.get("ended_at"))
    except (TypeError, ValueError):
        return validation_error({"started_at": "Must be an ISO 8601 datetime"})

    result = EventService(clock=get_clock()).reading_session_ended(
        user_id,
        data.get("session_id"),
        duration,
        focus_score,
        pages_read,
        started_at=started_at,
        ended_at=ended_at,
        book_id=data.get("book_id"),
    )
    return success_response(result, status_code=201)


@api_bp.route("/users/<int:user_id>/books", methods=["POST"])
def register_book(user_id: int):
    """
    Register a book.

    Request body:
    {
        "book_id": 7,
        "title": "Dune",
        "genre": "science fiction",
        "page_count": 412
    }
    """
    data = request.get_json(silent=True) or {}

    page_count = data.get("page_count")
    if page_count is not None:
        try:
            page_count = int(page_count)
        except (TypeError, ValueError):
            return validation_error({"page_count": "Must be an integer"})
        if page_count < 0:
            return validation_error({"page_count": "Must be >= 0"})

    result = EventService(clock=get_clock()).book_registered(
        user_id,
        book_id=data.get("book_id"),
        is_first=data.get("is_first"),
        genre=data.get("genre"),
        page_count=page_count,
        title=data.get("title"),
    )
    return success_response(result, status_code=201)


@api_bp.route("/users/<int:user_id>/books/<int:book_id>/complete", methods=["POST"])
def complete_book(user_id: int, book_id: int):
    """Mark a book finished and collect the completion reward."""
    data = request.get_json(silent=True) or {}

    page_count = data.get("page_count")
    if page_count is not None:
        try:
            page_count = int(page_count)
        except (TypeError, ValueError):
            return validation_error({"page_count": "Must be an integer"})

    result = EventService(clock=get_clock()).book_completed(
        user_id, book_id, page_count
    )
    return success_response(result)
