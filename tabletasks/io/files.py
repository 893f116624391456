"""File records: write-once metadata rows pointing at blob store objects."""
from __future__ import annotations
import hashlib
import logging
import mimetypes
import re
import threading
import uuid
from typing import Dict, Optional, Protocol

from tabletasks.core.errors import NotFound
from tabletasks.io.schemas import FileRecord, FileSource, utcnow
from tabletasks.io.storage import BlobStore

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


class FileStore(Protocol):
    def insert(self, record: FileRecord) -> FileRecord: ...

    def select_by_id(self, file_id: str) -> Optional[FileRecord]: ...


class InMemoryFileStore:
    def __init__(self):
        self._rows: Dict[str, FileRecord] = {}
        self._lock = threading.Lock()

    def insert(self, record: FileRecord) -> FileRecord:
        with self._lock:
            self._rows[record.id] = record.model_copy()
        return record

    def select_by_id(self, file_id: str) -> Optional[FileRecord]:
        with self._lock:
            row = self._rows.get(file_id)
            return row.model_copy() if row else None


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_CHARS.sub("_", filename)[:128] or "file"


def build_storage_key(owner_id: str, filename: str) -> str:
    now = utcnow()
    return f"{owner_id}/{now:%Y/%m/%d}/{uuid.uuid4()}-{sanitize_filename(filename)}"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class FileService:
    def __init__(self, store: FileStore, blobs: BlobStore):
        self.store = store
        self.blobs = blobs

    def upload_file(
        self,
        owner_id: str,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
        source: FileSource = FileSource.UPLOAD,
    ) -> FileRecord:
        """Put the bytes in the blob store, then record the file row."""
        filename = sanitize_filename(filename)
        content_type = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        storage_key = build_storage_key(owner_id, filename)
        checksum = sha256_hex(data)
        source = FileSource(source)

        self.blobs.put(
            storage_key,
            data,
            content_type,
            {"checksum": checksum, "owner_id": owner_id, "source": source.value},
        )
        record = FileRecord(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            storage_key=storage_key,
            filename=filename,
            content_type=content_type,
            size_bytes=len(data),
            content_hash=checksum,
            source=source,
        )
        self.store.insert(record)
        logger.info(f"file {record.id} stored for {owner_id} ({record.size_bytes} bytes, {source.value})")
        return record

    def get_file_by_id(self, file_id: str) -> FileRecord:
        record = self.store.select_by_id(file_id)
        if record is None:
            raise NotFound("Input file no longer exists.", title="File not found")
        return record

    def get_file_for_owner(self, file_id: str, owner_id: str) -> FileRecord:
        record = self.store.select_by_id(file_id)
        if record is None or record.owner_id != owner_id:
            raise NotFound("No accessible file matches this id.", title="File not found")
        return record
