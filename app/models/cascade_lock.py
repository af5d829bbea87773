from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, UniqueConstraint

from app.database.base import Base


class CascadeLock(Base):
    __tablename__ = "cascade_locks"

    id = Column(Integer, primary_key=True)
    scope_key = Column(String(80), nullable=False)
    organization_id = Column(Integer, nullable=False)
    branch_id = Column(Integer)

    locked_by = Column(String(120), nullable=False)
    acquired_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    heartbeat_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("scope_key", name="uq_cascade_locks_scope"),
        Index("idx_cascade_locks_org", "organization_id"),
    )


__all__ = ["CascadeLock"]
