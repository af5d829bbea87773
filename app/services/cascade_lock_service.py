import logging
import os
import socket
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import CascadeInProgressError
from app.core.scope import Scope
from app.models.cascade_lock import CascadeLock

logger = logging.getLogger(__name__)


def _utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    # SQLite hands back naive datetimes.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def lock_owner() -> str:
    return "{}:{}".format(socket.gethostname(), os.getpid())


def _lock_scope(lock: CascadeLock) -> Scope:
    if lock.scope_key.endswith(":*"):
        return Scope.organization(lock.organization_id)
    return Scope.branch(lock.organization_id, lock.branch_id)


def _organization_locks(db: Session, organization_id: int):
    stmt = select(CascadeLock).where(CascadeLock.organization_id == organization_id)
    return list(db.execute(stmt).scalars().all())


def _in_progress(scope: Scope, lock: CascadeLock) -> CascadeInProgressError:
    return CascadeInProgressError(
        "A stock cascade is already running for {} (held by {})".format(lock.scope_key, lock.locked_by)
    )


def acquire_cascade_lock(db: Session, scope: Scope, *, owner=None, stale_seconds=None, now=None) -> CascadeLock:
    """Claim the cascade lock for ``scope``.

    Live locks on an overlapping scope raise ``CascadeInProgressError``.
    Locks whose heartbeat is older than ``stale_seconds`` are taken over.
    """
    owner = owner or lock_owner()
    now = now or _utcnow()
    if stale_seconds is None:
        stale_seconds = get_settings().CASCADE_LOCK_STALE_SECONDS
    stale_before = now - timedelta(seconds=stale_seconds)

    own_lock = None
    for lock in _organization_locks(db, scope.organization_id):
        if not scope.overlaps(_lock_scope(lock)):
            continue
        heartbeat = as_utc(lock.heartbeat_at)
        if heartbeat is not None and heartbeat > stale_before:
            raise _in_progress(scope, lock)

        logger.warning(
            "Taking over stale cascade lock %s from %s (last heartbeat %s)",
            lock.scope_key,
            lock.locked_by,
            heartbeat,
        )
        if lock.scope_key == scope.key:
            result = db.execute(
                update(CascadeLock)
                .where(CascadeLock.id == lock.id, CascadeLock.heartbeat_at == lock.heartbeat_at)
                .values(locked_by=owner, acquired_at=now, heartbeat_at=now)
            )
            own_lock = lock
        else:
            result = db.execute(
                delete(CascadeLock).where(
                    CascadeLock.id == lock.id,
                    CascadeLock.heartbeat_at == lock.heartbeat_at,
                )
            )
        if result.rowcount != 1:
            db.rollback()
            raise _in_progress(scope, lock)

    if own_lock is None:
        db.add(
            CascadeLock(
                scope_key=scope.key,
                organization_id=scope.organization_id,
                branch_id=scope.branch_id,
                locked_by=owner,
                acquired_at=now,
                heartbeat_at=now,
            )
        )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise CascadeInProgressError("A stock cascade is already running for {}".format(scope.key)) from exc

    lock = db.execute(select(CascadeLock).where(CascadeLock.scope_key == scope.key)).scalar_one()
    db.refresh(lock)

    # Two overlapping scopes with different keys can insert at the same time.
    for other in _organization_locks(db, scope.organization_id):
        if other.id == lock.id or not scope.overlaps(_lock_scope(other)):
            continue
        other_heartbeat = as_utc(other.heartbeat_at)
        if other_heartbeat is not None and other_heartbeat > stale_before:
            release_cascade_lock(db, lock.id, lock.locked_by)
            raise _in_progress(scope, other)
    return lock


def touch_cascade_lock(db: Session, lock: CascadeLock, *, now=None) -> None:
    """Refresh the heartbeat; committed with the caller's next commit."""
    db.execute(
        update(CascadeLock)
        .where(CascadeLock.id == lock.id, CascadeLock.locked_by == lock.locked_by)
        .values(heartbeat_at=now or _utcnow())
    )


def release_cascade_lock(db: Session, lock_id: int, owner: str) -> None:
    db.rollback()
    db.execute(
        delete(CascadeLock).where(
            CascadeLock.id == lock_id,
            CascadeLock.locked_by == owner,
        )
    )
    db.commit()


@contextmanager
def cascade_lock(db: Session, scope: Scope, **kwargs):
    lock = acquire_cascade_lock(db, scope, **kwargs)
    lock_id, owner = lock.id, lock.locked_by
    try:
        yield lock
    finally:
        try:
            release_cascade_lock(db, lock_id, owner)
        except Exception:
            logger.exception("Failed to release cascade lock %s (id %s, owner %s)", scope.key, lock_id, owner)
            raise


__all__ = [
    "acquire_cascade_lock",
    "as_utc",
    "cascade_lock",
    "lock_owner",
    "release_cascade_lock",
    "touch_cascade_lock",
]
