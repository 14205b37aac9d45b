"""Fire-and-forget dispatch of background work to the Celery worker.

Side effects such as loyalty awards, rating refreshes, view counts and
emails must never fail the request that triggered them, so dispatch errors
are logged and dropped here.

Work that reads rows written by the current request is queued on the
session with dispatch_after_commit and only sent once the commit succeeds;
a rollback discards it.
"""

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.worker import celery_app

logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_tasks"


def dispatch(task_name: str, *args: Any, **options: Any) -> None:
    """Send a task by name. Never raises."""
    try:
        celery_app.send_task(task_name, args=list(args), **options)
    except Exception:
        logger.exception("Failed to dispatch %s with args %s", task_name, args)


def _send_pending(session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for task_name, args in pending:
        dispatch(task_name, *args)


def _discard_pending(session) -> None:
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.info("Rollback discarded %s queued task(s)", len(dropped))


def dispatch_after_commit(db: AsyncSession, task_name: str, *args: Any) -> None:
    """Queue a task to be sent when `db` next commits."""
    session = db.sync_session
    if _PENDING_KEY not in session.info:
        session.info[_PENDING_KEY] = []
        if not event.contains(session, "after_commit", _send_pending):
            event.listen(session, "after_commit", _send_pending)
            event.listen(session, "after_rollback", _discard_pending)
    session.info[_PENDING_KEY].append((task_name, args))


def pending_tasks(db: AsyncSession) -> list[tuple[str, tuple]]:
    return list(db.sync_session.info.get(_PENDING_KEY, []))
