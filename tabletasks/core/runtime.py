"""Builds the store/service graph from settings. One Runtime per process."""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from tabletasks.apps.registry import AppRegistry, registry as default_registry
from tabletasks.core.config import Settings, settings as default_settings
from tabletasks.core.db import SqlFileStore, SqlJobStore, SqlUsageEventStore, init_db, make_engine
from tabletasks.core.jobs import InMemoryJobStore, JobManager, JobStore
from tabletasks.io.files import FileService, FileStore, InMemoryFileStore
from tabletasks.io.storage import BlobStore, LocalBlobStore, S3BlobStore
from tabletasks.services.usage import InMemoryUsageEventStore, UsageEventStore
from tabletasks.worker.run_job import JobRunner

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    registry: AppRegistry
    job_store: JobStore
    file_store: FileStore
    usage_store: UsageEventStore
    blobs: BlobStore
    files: FileService
    jobs: JobManager
    runner: JobRunner


def build_blob_store(cfg: Settings) -> BlobStore:
    if cfg.STORAGE_BACKEND == "s3":
        if not cfg.S3_BUCKET:
            raise RuntimeError("STORAGE_BACKEND=s3 requires S3_BUCKET")
        return S3BlobStore(
            cfg.S3_BUCKET,
            endpoint_url=cfg.S3_ENDPOINT_URL,
            region=cfg.S3_REGION,
            access_key_id=cfg.S3_ACCESS_KEY_ID,
            secret_access_key=cfg.S3_SECRET_ACCESS_KEY,
        )
    if cfg.STORAGE_BACKEND != "local":
        raise RuntimeError(f"Unknown STORAGE_BACKEND '{cfg.STORAGE_BACKEND}'")
    return LocalBlobStore(cfg.STORAGE_DIR)


def build_runtime(
    cfg: Optional[Settings] = None,
    *,
    blobs: Optional[BlobStore] = None,
    registry: Optional[AppRegistry] = None,
) -> Runtime:
    cfg = cfg or default_settings
    registry = registry or default_registry
    blobs = blobs or build_blob_store(cfg)

    if cfg.DATABASE_URL:
        engine = make_engine(cfg.DATABASE_URL)
        init_db(engine)
        job_store, file_store, usage_store = SqlJobStore(engine), SqlFileStore(engine), SqlUsageEventStore(engine)
        logger.info(f"using SQL stores ({engine.url.get_backend_name()})")
    else:
        job_store, file_store, usage_store = InMemoryJobStore(), InMemoryFileStore(), InMemoryUsageEventStore()
        logger.info("DATABASE_URL not set; using in-memory stores")

    files = FileService(file_store, blobs)
    return Runtime(
        settings=cfg,
        registry=registry,
        job_store=job_store,
        file_store=file_store,
        usage_store=usage_store,
        blobs=blobs,
        files=files,
        jobs=JobManager(job_store, registry, files),
        runner=JobRunner(job_store, files, blobs, registry, usage_store),
    )
