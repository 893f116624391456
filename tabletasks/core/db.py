"""
SQLAlchemy-backed row stores.

The claim is a single ``UPDATE jobs SET ... WHERE id = :id AND status = 'queued'``;
``rowcount`` tells the caller whether it won. No other locking is involved.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, create_engine, func, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from tabletasks.core.errors import StoreUnavailable
from tabletasks.io.schemas import FileRecord, JobRecord, JobStatus, UsageEvent, utcnow

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class JobRow(Base):
    __tablename__ = "jobs"

    # store-assigned insertion order, breaks created_at ties
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    owner_id: Mapped[str] = mapped_column(String(128), index=True)
    app_id: Mapped[str] = mapped_column(String(64))
    input_file_id: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(16), index=True, default="queued")
    progress: Mapped[int] = mapped_column(Integer, default=0)
    options: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    result: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    result_file_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class FileRow(Base):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), index=True)
    storage_key: Mapped[str] = mapped_column(Text)
    filename: Mapped[str] = mapped_column(String(255))
    content_type: Mapped[str] = mapped_column(String(255))
    size_bytes: Mapped[int] = mapped_column(Integer)
    content_hash: Mapped[str] = mapped_column(String(64))
    source: Mapped[str] = mapped_column(String(16), default="upload")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class UsageEventRow(Base):
    __tablename__ = "usage_events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), index=True)
    event_type: Mapped[str] = mapped_column(String(64), index=True)
    resource_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


def make_engine(database_url: str) -> Engine:
    kwargs: Dict[str, Any] = {"future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")


class SqlJobStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def insert(self, job: JobRecord) -> JobRecord:
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(JobRow.__table__).values(**job.model_dump()))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Unable to create job: {e}") from e
        return job

    def select_oldest(self, status: str) -> Optional[JobRecord]:
        stmt = (
            select(JobRow.__table__)
            .where(JobRow.status == JobStatus(status).value)
            .order_by(JobRow.created_at.asc(), JobRow.seq.asc())
            .limit(1)
        )
        return self._one(stmt, "Unable to select queued job")

    def conditional_update(self, job_id: str, expected_status: str, patch: Dict[str, Any]) -> int:
        stmt = (
            update(JobRow.__table__)
            .where(JobRow.id == job_id, JobRow.status == JobStatus(expected_status).value)
            .values(**patch)
        )
        try:
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Unable to move job to processing: {e}") from e

    def update_unconditional(self, job_id: str, patch: Dict[str, Any]) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(update(JobRow.__table__).where(JobRow.id == job_id).values(**patch))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Unable to update job {job_id}: {e}") from e

    def select_by_id(self, job_id: str) -> Optional[JobRecord]:
        return self._one(select(JobRow.__table__).where(JobRow.id == job_id), "Unable to read job")

    def list_for_owner(self, owner_id: str, limit: int = 20) -> List[JobRecord]:
        stmt = (
            select(JobRow.__table__)
            .where(JobRow.owner_id == owner_id)
            .order_by(JobRow.created_at.desc(), JobRow.seq.desc())
            .limit(limit)
        )
        try:
            with self.engine.connect() as conn:
                return [JobRecord.model_validate(dict(r)) for r in conn.execute(stmt).mappings()]
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Unable to list jobs: {e}") from e

    def _one(self, stmt, what: str) -> Optional[JobRecord]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(stmt).mappings().first()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"{what}: {e}") from e
        return JobRecord.model_validate(dict(row)) if row else None


class SqlFileStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def insert(self, record: FileRecord) -> FileRecord:
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(FileRow.__table__).values(**record.model_dump()))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Unable to save file metadata: {e}") from e
        return record

    def select_by_id(self, file_id: str) -> Optional[FileRecord]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(FileRow.__table__).where(FileRow.id == file_id)).mappings().first()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Unable to read file metadata: {e}") from e
        return FileRecord.model_validate(dict(row)) if row else None


class SqlUsageEventStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def insert(self, event: UsageEvent) -> UsageEvent:
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(UsageEventRow.__table__).values(**event.model_dump()))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Unable to write usage event: {e}") from e
        return event

    def count_recent(self, event_type: str, owner_id: Optional[str] = None, minutes: int = 1) -> int:
        since = utcnow() - timedelta(minutes=minutes)
        stmt = (
            select(func.count())
            .select_from(UsageEventRow)
            .where(UsageEventRow.event_type == event_type, UsageEventRow.created_at >= since)
        )
        if owner_id:
            stmt = stmt.where(UsageEventRow.owner_id == owner_id)
        try:
            with self.engine.connect() as conn:
                return int(conn.execute(stmt).scalar_one())
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Unable to read usage counters: {e}") from e
