"""Append-only audit trail backed by a relational store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
import logging
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, create_engine, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from datagate.core.logging_safety import safe_log_identifier

logger = logging.getLogger(__name__)


class AuditEventType(str, Enum):
    JOB_CREATED = "JOB_CREATED"
    FILE_UPLOADED = "FILE_UPLOADED"
    ANALYSIS_ENQUEUED = "ANALYSIS_ENQUEUED"
    ANALYSIS_STARTED = "ANALYSIS_STARTED"
    ANALYSIS_COMPLETED = "ANALYSIS_COMPLETED"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"
    CLEANING_ENQUEUED = "CLEANING_ENQUEUED"
    CLEANING_STARTED = "CLEANING_STARTED"
    RULE_APPLIED = "RULE_APPLIED"
    CLEANING_COMPLETED = "CLEANING_COMPLETED"
    CLEANING_FAILED = "CLEANING_FAILED"
    JOB_DELETED = "JOB_DELETED"


class AuditWriteError(Exception):
    """Raised when a synchronous audit append could not be made durable."""


class Base(DeclarativeBase):
    pass


class AuditLogRow(Base):
    """Audit rows are only ever inserted; nothing updates or deletes them."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Not a foreign key: events outlive deleted jobs.
    job_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


@dataclass(slots=True, frozen=True)
class AuditEvent:
    id: int
    job_id: str | None
    event_type: AuditEventType
    payload: dict[str, Any]
    created_at: datetime


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every checkout sees an empty database.
            options["poolclass"] = StaticPool
        return create_engine(database_url, **options)
    return create_engine(database_url, pool_pre_ping=True)


class AuditTrail:
    """Writes lifecycle events keyed by job id.

    ``append`` is the synchronous mode: the row is committed before it returns
    and any failure surfaces as :class:`AuditWriteError`. ``append_detached``
    is for background delegation tasks that run after the client already has
    its response; failures are logged and reported as ``False``.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        self.failure_message: str | None = None

    @classmethod
    def from_url(cls, database_url: str) -> AuditTrail:
        return cls(build_engine(database_url))

    def migrate(self) -> None:
        """Create the audit schema if missing; safe to run repeatedly."""
        Base.metadata.create_all(bind=self._engine)
        logger.info("audit.migrated dialect=%s", self._engine.dialect.name)

    def ping(self) -> bool:
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("audit.ping_failed dialect=%s", self._engine.dialect.name)
            return False
        return True

    def append(self, job_id: str | None, event_type: AuditEventType, payload: dict[str, Any] | None = None) -> int:
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        row = AuditLogRow(
            job_id=job_id,
            event_type=AuditEventType(event_type).value,
            payload=dict(payload or {}),
            created_at=datetime.now(UTC),
        )
        try:
            self._maybe_raise_failpoint()
            with self._sessions.begin() as session:
                session.add(row)
                session.flush()
                event_id = row.id
        except (SQLAlchemyError, RuntimeError) as exc:
            logger.error(
                "audit.write_failed job_id=%s event_type=%s reason=%s",
                safe_job_id,
                row.event_type,
                type(exc).__name__,
            )
            raise AuditWriteError(f"Could not record {row.event_type} audit event") from exc

        logger.debug("audit.appended job_id=%s event_type=%s id=%s", safe_job_id, row.event_type, event_id)
        return event_id

    def append_detached(
        self,
        job_id: str | None,
        event_type: AuditEventType,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        try:
            self.append(job_id, event_type, payload)
        except AuditWriteError:
            logger.warning(
                "audit.detached_write_failed job_id=%s event_type=%s",
                safe_log_identifier(job_id, prefix="jid"),
                event_type,
            )
            return False
        return True

    def list_for_job(self, job_id: str) -> list[AuditEvent]:
        with Session(self._engine) as session:
            rows = session.scalars(
                select(AuditLogRow).where(AuditLogRow.job_id == job_id).order_by(AuditLogRow.id)
            ).all()
        return [
            AuditEvent(
                id=row.id,
                job_id=row.job_id,
                event_type=AuditEventType(row.event_type),
                payload=dict(row.payload or {}),
                created_at=row.created_at,
            )
            for row in rows
        ]

    def dispose(self) -> None:
        self._engine.dispose()

    def _maybe_raise_failpoint(self) -> None:
        if self.failure_message is None:
            return
        message = self.failure_message
        self.failure_message = None
        raise RuntimeError(message)
