"""SQLAlchemy database models"""
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Enum, JSON, Index, text
)

from gazette_sync.db.session import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(enum_cls):
    # Persist the lowercase values ('running'), not the member names
    return [member.value for member in enum_cls]


class SyncTrigger(str, PyEnum):
    """What started a sync run"""
    SCHEDULED = "scheduled"
    MANUAL = "manual"
    STARTUP = "startup"


class SyncRunStatus(str, PyEnum):
    """Lifecycle of a sync run: running -> success | partial | failed"""
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class Communication(Base):
    """Court communication ingested from the DJEN gazette"""
    __tablename__ = "gazette_communications"

    id = Column(Integer, primary_key=True, index=True)
    dedup_key = Column(String(512), nullable=False)
    external_id = Column(String(255), nullable=True, index=True)  # DJEN hash

    process_number = Column(String(32), nullable=False, index=True)  # digits only
    process_number_masked = Column(String(40), nullable=True)  # NNNNNNN-DD.AAAA.J.TT.OOOO
    court = Column(String(32), nullable=True)  # siglaTribunal
    disclosure_date = Column(Date, nullable=False, index=True)
    channel = Column(String(4), nullable=True)  # meio
    communication_type = Column(String(255), nullable=True)
    organ_name = Column(String(512), nullable=True)
    communication_number = Column(String(64), nullable=True)  # numeroComunicacao
    document_type = Column(String(255), nullable=True)  # tipoDocumento
    class_name = Column(String(255), nullable=True)  # nomeClasse
    recipients = Column(JSON, nullable=True)  # [{"name", "pole"}]
    attorney_recipients = Column(JSON, nullable=True)  # [{"name", "oab_number", "oab_uf"}]
    text = Column(Text, nullable=True)
    link = Column(Text, nullable=True)
    attorney_name = Column(String(255), nullable=False, index=True)

    # User state - never written by ingestion after insert
    read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    ingested_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_gazette_communications_dedup_key", "dedup_key", unique=True),
    )


class SyncRun(Base):
    """Audit row for one sync execution"""
    __tablename__ = "gazette_sync_runs"

    id = Column(Integer, primary_key=True, index=True)
    trigger = Column(Enum(SyncTrigger, values_callable=_enum_values), nullable=False)
    status = Column(
        Enum(SyncRunStatus, values_callable=_enum_values),
        default=SyncRunStatus.RUNNING,
        nullable=False,
        index=True,
    )

    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, nullable=True)

    items_found = Column(Integer, default=0, nullable=False)
    items_saved = Column(Integer, default=0, nullable=False)
    error_count = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)

    # Searched window, known once the config has been loaded
    date_range_start = Column(Date, nullable=True)
    date_range_end = Column(Date, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        # At most one running row across every process sharing the database
        Index(
            "ix_gazette_sync_runs_single_running",
            "status",
            unique=True,
            postgresql_where=text("status = 'running'"),
            sqlite_where=text("status = 'running'"),
        ),
    )


class SystemSetting(Base):
    """Key/value JSON settings editable from the operator screens"""
    __tablename__ = "system_settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=False)
    updated_by = Column(String(255), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
