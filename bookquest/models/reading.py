"""Books and reading sessions fed in by the host application."""

from datetime import datetime

from bookquest import db
from bookquest.utils.timeutil import isoformat


class Book(db.Model):
    """A book registered by a user."""

    __tablename__ = "books"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    title = db.Column(db.String(300), nullable=True)
    genre = db.Column(db.String(50), nullable=True)
    page_count = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "genre": self.genre,
            "page_count": self.page_count,
            "created_at": isoformat(self.created_at),
            "completed_at": isoformat(self.completed_at),
        }


class ReadingSession(db.Model):
    """A finished reading session."""

    __tablename__ = "reading_sessions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    book_id = db.Column(
        db.Integer, db.ForeignKey("books.id", ondelete="SET NULL"), nullable=True
    )

    started_at = db.Column(db.DateTime, nullable=False)
    ended_at = db.Column(db.DateTime, nullable=False)
    duration_minutes = db.Column(db.Integer, default=0, nullable=False)
    focus_score = db.Column(db.Integer, default=0, nullable=False)
    pages_read = db.Column(db.Integer, default=0, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "started_at": isoformat(self.started_at),
            "ended_at": isoformat(self.ended_at),
            "duration_minutes": self.duration_minutes,
            "focus_score": self.focus_score,
            "pages_read": self.pages_read,
        }
