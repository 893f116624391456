from __future__ import annotations
import itertools
import logging
import threading
import uuid
from typing import Any, Dict, List, Optional, Protocol, Tuple

from tabletasks.apps.registry import AppRegistry
from tabletasks.core.errors import NotFound, UnsupportedInput
from tabletasks.io.files import FileService
from tabletasks.io.schemas import JobRecord, JobStatus

logger = logging.getLogger(__name__)

# Progress checkpoints polled by clients; fixed values.
PROGRESS_CLAIMED = 5
PROGRESS_INPUT_FETCH = 20
PROGRESS_RUNNING = 55
PROGRESS_DONE = 100


class JobStore(Protocol):
    def insert(self, job: JobRecord) -> JobRecord: ...

    def select_oldest(self, status: str) -> Optional[JobRecord]: ...

    def conditional_update(self, job_id: str, expected_status: str, patch: Dict[str, Any]) -> int: ...

    def update_unconditional(self, job_id: str, patch: Dict[str, Any]) -> None: ...

    def select_by_id(self, job_id: str) -> Optional[JobRecord]: ...

    def list_for_owner(self, owner_id: str, limit: int = 20) -> List[JobRecord]: ...


class InMemoryJobStore:
    """Process-local job store.

    The lock makes ``conditional_update`` an atomic compare-and-swap, standing in
    for a row-level ``UPDATE ... WHERE status = ?`` on a real database.
    """

    def __init__(self):
        self._rows: Dict[str, Tuple[int, JobRecord]] = {}
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def insert(self, job: JobRecord) -> JobRecord:
        with self._lock:
            self._rows[job.id] = (next(self._seq), job.model_copy())
        return job

    def select_oldest(self, status: str) -> Optional[JobRecord]:
        status = JobStatus(status).value
        with self._lock:
            candidates = [(job.created_at, seq, job) for seq, job in self._rows.values() if job.status == status]
            if not candidates:
                return None
            return min(candidates, key=lambda c: (c[0], c[1]))[2].model_copy()

    def conditional_update(self, job_id: str, expected_status: str, patch: Dict[str, Any]) -> int:
        expected_status = JobStatus(expected_status).value
        with self._lock:
            entry = self._rows.get(job_id)
            if entry is None or entry[1].status != expected_status:
                return 0
            seq, job = entry
            self._rows[job_id] = (seq, _apply(job, patch))
            return 1

    def update_unconditional(self, job_id: str, patch: Dict[str, Any]) -> None:
        with self._lock:
            entry = self._rows.get(job_id)
            if entry is None:
                return
            seq, job = entry
            self._rows[job_id] = (seq, _apply(job, patch))

    def select_by_id(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            entry = self._rows.get(job_id)
            return entry[1].model_copy() if entry else None

    def list_for_owner(self, owner_id: str, limit: int = 20) -> List[JobRecord]:
        with self._lock:
            rows = [(job.created_at, seq, job) for seq, job in self._rows.values() if job.owner_id == owner_id]
        rows.sort(key=lambda r: (r[0], r[1]), reverse=True)
        return [job.model_copy() for _, _, job in rows[:limit]]


def _apply(job: JobRecord, patch: Dict[str, Any]) -> JobRecord:
    data = job.model_dump()
    data.update(patch)
    return JobRecord.model_validate(data)


class JobManager:
    """Job creation and owner-scoped reads. Execution lives in the worker."""

    def __init__(self, store: JobStore, registry: AppRegistry, files: FileService):
        self.store = store
        self.registry = registry
        self.files = files

    def create_job(self, owner_id: str, app_id: str, input_file_id: str,
                   options: Optional[Dict[str, Any]] = None) -> JobRecord:
        app = self.registry.lookup(app_id)
        input_file = self.files.get_file_for_owner(input_file_id, owner_id)
        if not app.accepts(input_file.content_type):
            raise UnsupportedInput(
                f"App '{app_id}' does not accept content type '{input_file.content_type}'."
            )
        validated = app.validate_options(options or {})

        job = JobRecord(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            app_id=app_id,
            input_file_id=input_file_id,
            options=validated,
        )
        self.store.insert(job)
        logger.info(f"job {job.id} queued for {owner_id} (app={app_id}, file={input_file_id})")
        return job

    def get_job(self, owner_id: str, job_id: str) -> JobRecord:
        job = self.store.select_by_id(job_id)
        if job is None or job.owner_id != owner_id:
            raise NotFound("No accessible job matches this id.", title="Job not found")
        return job

    def list_recent_jobs(self, owner_id: str, limit: int = 20) -> List[JobRecord]:
        return self.store.list_for_owner(owner_id, limit)
