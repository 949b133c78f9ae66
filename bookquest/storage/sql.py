"""SQLAlchemy implementation of the storage boundary."""

import logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime
from types import MappingProxyType

from sqlalchemy import and_, distinct, func, or_
from sqlalchemy.exc import IntegrityError, OperationalError

from bookquest import db
from bookquest.errors import StorageConflict
from bookquest.models import (
    AchievementAward,
    Book,
    LevelHistory,
    Quest,
    QuestMetadata,
    QuestStatus,
    QuestStatusHistory,
    ReadingSession,
    RewardHistory,
    UserBadge,
    UserProgress,
)
from bookquest.storage.base import StatsSnapshot, StorageAdapter
from bookquest.utils.timeutil import local_time, to_storage

logger = logging.getLogger(__name__)

# Session-scoped nesting depth, shared by every adapter instance
_DEPTH_KEY = "bookquest_tx_depth"

TERMINAL_STATUSES = (
    QuestStatus.COMPLETED.value,
    QuestStatus.EXPIRED.value,
    QuestStatus.LEGENDARY.value,
)
PAID_STATUSES = (QuestStatus.COMPLETED.value, QuestStatus.READY_TO_CLAIM.value)
OPEN_STATUSES = (
    QuestStatus.PENDING.value,
    QuestStatus.ACTIVE.value,
    QuestStatus.PAUSED.value,
)


class SQLAlchemyStorage(StorageAdapter):
    """Storage adapter over the Flask-SQLAlchemy session."""

    @contextmanager
    def transaction(self):
        info = db.session.info
        depth = info.get(_DEPTH_KEY, 0)
        info[_DEPTH_KEY] = depth + 1
        try:
            yield self
            if depth == 0:
                db.session.commit()
        except (IntegrityError, OperationalError) as e:
            if depth == 0:
                db.session.rollback()
            logger.warning(f"Storage conflict, transaction rolled back: {e.orig}")
            raise StorageConflict(
                "Concurrent update detected, retry the operation",
                {"reason": type(e.orig).__name__},
            ) from e
        except Exception:
            if depth == 0:
                db.session.rollback()
            raise
        finally:
            info[_DEPTH_KEY] = depth

    # ============ Quests ============

    def read_quest(self, quest_id: int, for_update: bool = False) -> Quest | None:
        query = Quest.query.filter_by(id=quest_id)
        if for_update:
            # Locked reads overwrite whatever this session loaded before
            query = query.with_for_update().populate_existing()
        return query.first()

    def create_quest(self, fields: dict, metadata: dict) -> Quest:
        quest = Quest(**fields)
        quest.quest_metadata = QuestMetadata(**metadata)
        db.session.add(quest)
        db.session.flush()
        return quest

    def write_quest_transition(
        self, quest: Quest, status: str, history: dict, changes: dict
    ) -> Quest:
        from_status = quest.status
        for key, value in changes.items():
            setattr(quest, key, value)
        quest.status = status
        db.session.add(
            QuestStatusHistory(
                quest_id=quest.id,
                from_status=from_status,
                to_status=status,
                changed_by=history.get("actor", "system"),
                reason=history.get("reason"),
                created_at=to_storage(history["at"]),
            )
        )
        db.session.flush()
        return quest

    def update_quest_fields(self, quest: Quest, **changes) -> Quest:
        for key, value in changes.items():
            setattr(quest, key, value)
        db.session.flush()
        return quest

    def increment_quest_progress(self, quest: Quest, amount: float) -> Quest:
        Quest.query.filter_by(id=quest.id).update(
            {Quest.progress: Quest.progress + amount}, synchronize_session=False
        )
        db.session.refresh(quest)
        return quest

    def update_quest_metadata(self, quest: Quest, **changes) -> QuestMetadata:
        meta = quest.quest_metadata
        if meta is None:
            meta = QuestMetadata(quest_id=quest.id)
            quest.quest_metadata = meta
        for key, value in changes.items():
            setattr(meta, key, value)
        db.session.flush()
        return meta

    def append_history(
        self,
        quest_id: int,
        from_status: str,
        to_status: str,
        actor: str,
        reason: str,
        at: datetime,
    ) -> QuestStatusHistory:
        row = QuestStatusHistory(
            quest_id=quest_id,
            from_status=from_status,
            to_status=to_status,
            changed_by=actor,
            reason=reason,
            created_at=to_storage(at),
        )
        db.session.add(row)
        db.session.flush()
        return row

    def list_history(self, quest_id: int) -> list[QuestStatusHistory]:
        return (
            QuestStatusHistory.query.filter_by(quest_id=quest_id)
            .order_by(QuestStatusHistory.created_at.desc(), QuestStatusHistory.id.desc())
            .all()
        )

    def history_exists(self, quest_id: int, reason: str, since: datetime) -> bool:
        return (
            QuestStatusHistory.query.filter(
                QuestStatusHistory.quest_id == quest_id,
                QuestStatusHistory.reason == reason,
                QuestStatusHistory.created_at >= to_storage(since),
            ).first()
            is not None
        )

    def list_expiry_candidates(self, now: datetime) -> list[Quest]:
        cutoff = to_storage(now)
        return (
            Quest.query.filter(
                Quest.expires_at.isnot(None),
                Quest.expires_at < cutoff,
                or_(
                    Quest.status.notin_(TERMINAL_STATUSES),
                    # Completed recurring quests still waiting for their next cycle
                    and_(
                        Quest.status == QuestStatus.COMPLETED.value,
                        Quest.auto_renew.is_(True),
                        Quest.renewed_at.is_(None),
                    ),
                ),
            )
            .order_by(Quest.id)
            .all()
        )

    def list_expiring_between(self, start: datetime, end: datetime) -> list[Quest]:
        return (
            Quest.query.filter(
                Quest.status.in_(OPEN_STATUSES),
                Quest.expires_at > to_storage(start),
                Quest.expires_at <= to_storage(end),
            )
            .order_by(Quest.expires_at)
            .all()
        )

    def list_user_quests(
        self, user_id: int, statuses: list[str] | None = None
    ) -> list[Quest]:
        query = Quest.query.filter_by(user_id=user_id)
        if statuses:
            query = query.filter(Quest.status.in_(statuses))
        return query.order_by(Quest.created_at.desc(), Quest.id.desc()).all()

    def completed_template_ids(self, user_id: int) -> set[str]:
        rows = (
            db.session.query(distinct(Quest.template_id))
            .filter(
                Quest.user_id == user_id,
                Quest.template_id.isnot(None),
                Quest.status.in_(PAID_STATUSES),
            )
            .all()
        )
        return {row[0] for row in rows}

    # ============ User progress ============

    def read_user_progress(
        self, user_id: int, for_update: bool = False, now: datetime | None = None
    ) -> UserProgress:
        query = UserProgress.query.filter_by(user_id=user_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        progress = query.first()
        if progress is None:
            fields = {
                "user_id": user_id,
                "total_xp": 0,
                "total_coins": 0,
                "current_streak": 0,
                "longest_streak": 0,
            }
            if now is not None:
                fields["created_at"] = to_storage(now)
            progress = UserProgress(**fields)
            db.session.add(progress)
            db.session.flush()
        return progress

    def apply_user_delta(
        self, user_id: int, xp_delta: int, coin_delta: int
    ) -> UserProgress:
        progress = self.read_user_progress(user_id, for_update=True)
        # Increment in the database so concurrent grants never overwrite each other
        UserProgress.query.filter_by(user_id=user_id).update(
            {
                UserProgress.total_xp: UserProgress.total_xp + xp_delta,
                UserProgress.total_coins: UserProgress.total_coins + coin_delta,
                UserProgress.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
        db.session.refresh(progress)
        return progress

    def update_activity(
        self,
        user_id: int,
        current_streak: int,
        longest_streak: int,
        last_activity_date: date,
    ) -> UserProgress:
        progress = self.read_user_progress(user_id, for_update=True)
        progress.current_streak = current_streak
        progress.longest_streak = longest_streak
        progress.last_activity_date = last_activity_date
        db.session.flush()
        return progress

    # ============ Rewards and badges ============

    def find_reward(
        self, user_id: int, reward_type: str, source_id: str | None
    ) -> dict | None:
        row = RewardHistory.query.filter_by(
            user_id=user_id, reward_type=reward_type, source_id=source_id
        ).first()
        return row.to_dict() if row else None

    def record_reward(
        self, user_id: int, reward_type: str, source_id: str | None, result: dict
    ) -> RewardHistory:
        row = RewardHistory(
            user_id=user_id,
            reward_type=reward_type,
            source_id=source_id,
            xp_amount=result["xp"],
            coin_amount=result["coins"],
            badges=list(result["badges"]),
            leveled_up=result["leveled_up"],
            new_level=result.get("new_level"),
        )
        db.session.add(row)
        db.session.flush()
        return row

    def record_level_up(
        self,
        user_id: int,
        old_level: int,
        new_level: int,
        total_xp: int,
        rewards: dict,
    ) -> LevelHistory:
        row = LevelHistory(
            user_id=user_id,
            old_level=old_level,
            new_level=new_level,
            total_xp_at_levelup=total_xp,
            rewards_given=rewards,
        )
        db.session.add(row)
        db.session.flush()
        return row

    def grant_badge_if_absent(self, user_id: int, badge_name: str) -> bool:
        if UserBadge.query.filter_by(user_id=user_id, badge_name=badge_name).first():
            return False
        db.session.add(UserBadge(user_id=user_id, badge_name=badge_name))
        db.session.flush()
        return True

    def list_badges(self, user_id: int) -> list[UserBadge]:
        return (
            UserBadge.query.filter_by(user_id=user_id)
            .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
            .all()
        )

    def list_rewards(self, user_id: int, limit: int = 10) -> list[RewardHistory]:
        return (
            RewardHistory.query.filter_by(user_id=user_id)
            .order_by(RewardHistory.created_at.desc(), RewardHistory.id.desc())
            .limit(limit)
            .all()
        )

    # ============ Achievements ============

    def has_award(self, user_id: int, achievement_id: str) -> bool:
        return (
            AchievementAward.query.filter_by(
                user_id=user_id, achievement_id=achievement_id
            ).first()
            is not None
        )

    def record_award(self, user_id: int, achievement_id: str) -> bool:
        if self.has_award(user_id, achievement_id):
            return False
        db.session.add(AchievementAward(user_id=user_id, achievement_id=achievement_id))
        # A concurrent insert fails here on the unique constraint
        db.session.flush()
        return True

    def list_awards(self, user_id: int) -> list[AchievementAward]:
        return (
            AchievementAward.query.filter_by(user_id=user_id)
            .order_by(AchievementAward.earned_at.desc(), AchievementAward.id.desc())
            .all()
        )

    def read_aggregate_stats(self, user_id: int, timezone: str) -> StatsSnapshot:
        progress = UserProgress.query.filter_by(user_id=user_id).first()

        books_count = Book.query.filter_by(user_id=user_id).count()
        genre_count = (
            db.session.query(func.count(distinct(Book.genre)))
            .filter(Book.user_id == user_id, Book.genre.isnot(None))
            .scalar()
        ) or 0

        completed = (
            Quest.query.filter(
                Quest.user_id == user_id,
                Quest.status.in_(PAID_STATUSES),
                Quest.completed_at.isnot(None),
            )
            .order_by(Quest.completed_at.desc(), Quest.id.desc())
            .all()
        )
        consecutive_perfect = 0
        for quest in completed:
            if quest.completion_quality != "perfect":
                break
            consecutive_perfect += 1

        daily_pages = defaultdict(int)
        hour_counts = defaultdict(int)
        total_pages = total_minutes = 0
        weekend_pages = weekday_pages = 0
        max_rate = 0
        sessions = ReadingSession.query.filter_by(user_id=user_id).all()
        for session in sessions:
            started = local_time(session.started_at, timezone)
            pages = session.pages_read or 0
            minutes = session.duration_minutes or 0

            total_pages += pages
            total_minutes += minutes
            daily_pages[started.date()] += pages
            hour_counts[started.hour] += 1
            if started.weekday() >= 5:
                weekend_pages += pages
            else:
                weekday_pages += pages
            if pages > 0 and minutes > 0:
                # Sessions shorter than six minutes count as six
                rate = int(pages / max(minutes / 60, 0.1))
                max_rate = max(max_rate, rate)

        return StatsSnapshot(
            user_id=user_id,
            level=progress.level if progress else 1,
            total_xp=progress.total_xp if progress else 0,
            books_count=books_count,
            genre_count=genre_count,
            quests_completed=len(completed),
            consecutive_perfect=consecutive_perfect,
            longest_streak=progress.longest_streak if progress else 0,
            total_pages=total_pages,
            total_minutes=total_minutes,
            max_daily_pages=max(daily_pages.values(), default=0),
            max_pages_per_hour=max_rate,
            weekend_pages=weekend_pages,
            weekday_pages=weekday_pages,
            start_hour_counts=MappingProxyType(dict(hour_counts)),
        )

    # ============ Books and reading ============

    def record_book(self, user_id: int, book_id: int | None, **fields) -> Book:
        if book_id is not None:
            existing = db.session.get(Book, book_id)
            if existing is not None and existing.user_id == user_id:
                return existing
            fields["id"] = book_id
        book = Book(user_id=user_id, **fields)
        db.session.add(book)
        db.session.flush()
        return book

    def complete_book(
        self, user_id: int, book_id: int, completed_at: datetime
    ) -> Book | None:
        book = db.session.get(Book, book_id)
        if book is None or book.user_id != user_id:
            return None
        if book.completed_at is None:
            book.completed_at = to_storage(completed_at)
            db.session.flush()
        return book

    def record_reading_session(
        self, user_id: int, session_id: int | None, **fields
    ) -> ReadingSession:
        if session_id is not None:
            existing = db.session.get(ReadingSession, session_id)
            if existing is not None and existing.user_id == user_id:
                return existing
            fields["id"] = session_id
        for key in ("started_at", "ended_at"):
            fields[key] = to_storage(fields[key])
        session = ReadingSession(user_id=user_id, **fields)
        db.session.add(session)
        db.session.flush()
        return session

    def count_books(self, user_id: int) -> int:
        return Book.query.filter_by(user_id=user_id).count()
