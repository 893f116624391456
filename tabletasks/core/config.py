from __future__ import annotations
import os

class Settings:
    ENV: str = os.getenv("ENV", "production")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # API
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    MAX_UPLOAD_MB: int = int(os.getenv("MAX_UPLOAD_MB", "50"))
    # per user and per event type; 0 disables
    RATE_LIMIT_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

    # Row store; empty means in-process memory stores (local dev only)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # Blob store
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "local")
    STORAGE_DIR: str = os.getenv("STORAGE_DIR", "./.uploads")
    S3_BUCKET: str = os.getenv("S3_BUCKET", "")
    S3_ENDPOINT_URL: str | None = os.getenv("S3_ENDPOINT_URL") or None
    S3_REGION: str = os.getenv("S3_REGION", "auto")
    S3_ACCESS_KEY_ID: str | None = os.getenv("S3_ACCESS_KEY_ID") or None
    S3_SECRET_ACCESS_KEY: str | None = os.getenv("S3_SECRET_ACCESS_KEY") or None

    # Worker
    INTERNAL_RUNNER_TOKEN: str | None = os.getenv("INTERNAL_RUNNER_TOKEN") or None
    WORKER_BATCH_LIMIT: int = int(os.getenv("WORKER_BATCH_LIMIT", "1"))
    WORKER_POLL_INTERVAL_SECONDS: float = float(os.getenv("WORKER_POLL_INTERVAL_SECONDS", "5"))

settings = Settings()
