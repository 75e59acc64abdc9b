# recordshop/models/sync_run.py
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean

from recordshop.database import Base
from recordshop.core.enums import SyncRunStatus
from recordshop.core.utils import utc_now


class SyncRun(Base):
    """Audit row for one reconciliation run. Never used as a resumption cursor."""
    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True)
    mode = Column(String, nullable=False)
    status = Column(String, nullable=False, default=SyncRunStatus.RUNNING.value)
    trigger = Column(String)  # cli, scheduler, api

    created = Column(Integer, default=0)
    updated = Column(Integer, default=0)
    deleted = Column(Integer, default=0)
    mapping_errors = Column(Integer, default=0)
    skipped_deletions = Column(Integer, default=0)
    skipped_duplicates = Column(Integer, default=0)
    update_failures = Column(Integer, default=0)
    relinked = Column(Integer, default=0)
    pages_fetched = Column(Integer, default=0)
    partial = Column(Boolean, default=False)

    error_message = Column(Text)
    started_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    finished_at = Column(DateTime(timezone=True))

    def __repr__(self):
        return f"<SyncRun(id={self.id}, mode='{self.mode}', status='{self.status}')>"
