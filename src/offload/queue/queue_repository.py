"""SQLAlchemy-backed storage for named work queues."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db.db_models import QueueEntryModel
from ..exceptions import handle_sqlalchemy_errors


class QueueRepository:
    """Ordered, deduplicated paths per queue name.

    Every mutation runs in one transaction. Rows with ``queued = False``
    only carry a retry counter for a path that is not currently queued.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def add_many(self, queue_name: str, paths: Iterable[str]) -> int:
        added = 0
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="queue_entry"):
            rows = {
                row.path: row
                for row in session.query(QueueEntryModel).filter(
                    QueueEntryModel.queue_name == queue_name
                )
            }
            position = self._max_position(session, queue_name)
            for path in paths:
                row = rows.get(path)
                if row is not None and row.queued:
                    continue
                position += 1
                if row is None:
                    row = QueueEntryModel(queue_name=queue_name, path=path, retry_count=0)
                    rows[path] = row
                    session.add(row)
                row.queued = True
                row.position = position
                row.created_at = datetime.utcnow()
                added += 1
            if added:
                session.commit()
        return added

    def head(self, queue_name: str, limit: int) -> list[str]:
        if limit <= 0:
            return []
        with self._session_factory() as session:
            rows = (
                session.query(QueueEntryModel.path)
                .filter(QueueEntryModel.queue_name == queue_name, QueueEntryModel.queued.is_(True))
                .order_by(QueueEntryModel.position, QueueEntryModel.id)
                .limit(limit)
                .all()
            )
        return [row[0] for row in rows]

    def list_all(self, queue_name: str) -> list[str]:
        with self._session_factory() as session:
            rows = (
                session.query(QueueEntryModel.path)
                .filter(QueueEntryModel.queue_name == queue_name, QueueEntryModel.queued.is_(True))
                .order_by(QueueEntryModel.position, QueueEntryModel.id)
                .all()
            )
        return [row[0] for row in rows]

    def count(self, queue_name: str) -> int:
        with self._session_factory() as session:
            return (
                session.query(func.count(QueueEntryModel.id))
                .filter(QueueEntryModel.queue_name == queue_name, QueueEntryModel.queued.is_(True))
                .scalar()
                or 0
            )

    def remove_many(self, queue_name: str, paths: Iterable[str]) -> int:
        """Delete queued rows for ``paths``; commits only when something matched."""
        wanted = list(dict.fromkeys(paths))
        if not wanted:
            return 0
        with self._session_factory() as session:
            rows = (
                session.query(QueueEntryModel)
                .filter(QueueEntryModel.queue_name == queue_name, QueueEntryModel.path.in_(wanted))
                .all()
            )
            removed = sum(1 for row in rows if row.queued)
            if not rows:
                return 0
            for row in rows:
                session.delete(row)
            session.commit()
        return removed

    def clear(self, queue_name: str) -> int:
        with self._session_factory() as session:
            removed = (
                session.query(QueueEntryModel)
                .filter(QueueEntryModel.queue_name == queue_name)
                .delete(synchronize_session=False)
            )
            session.commit()
        return removed

    def increment_retry(self, queue_name: str, path: str) -> int:
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="queue_entry"):
            row = (
                session.query(QueueEntryModel)
                .filter(QueueEntryModel.queue_name == queue_name, QueueEntryModel.path == path)
                .one_or_none()
            )
            if row is None:
                row = QueueEntryModel(
                    queue_name=queue_name,
                    path=path,
                    position=0,
                    retry_count=0,
                    queued=False,
                )
                session.add(row)
            row.retry_count = (row.retry_count or 0) + 1
            session.commit()
            return row.retry_count

    def reset_retry(self, queue_name: str, path: str) -> None:
        with self._session_factory() as session:
            row = (
                session.query(QueueEntryModel)
                .filter(QueueEntryModel.queue_name == queue_name, QueueEntryModel.path == path)
                .one_or_none()
            )
            if row is None:
                return
            if not row.queued:
                session.delete(row)
            elif row.retry_count == 0:
                return
            else:
                row.retry_count = 0
            session.commit()

    def retry_counts(self, queue_name: str) -> dict[str, int]:
        with self._session_factory() as session:
            rows = (
                session.query(QueueEntryModel.path, QueueEntryModel.retry_count)
                .filter(QueueEntryModel.queue_name == queue_name, QueueEntryModel.retry_count > 0)
                .all()
            )
        return {path: count for path, count in rows}

    @staticmethod
    def _max_position(session: Session, queue_name: str) -> int:
        value = (
            session.query(func.max(QueueEntryModel.position))
            .filter(QueueEntryModel.queue_name == queue_name)
            .scalar()
        )
        return int(value or 0)
