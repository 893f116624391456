"""
Claim-and-run loop for queued jobs.

A job is claimed with a compare-and-swap on its status (queued -> processing),
so several runners may poll the same store; only the one whose update affects
a row executes the job. Once claimed, a job always ends completed or failed.
"""
from __future__ import annotations
import logging
from typing import List, Optional

from tabletasks.apps.registry import AppRegistry
from tabletasks.apps.types import AppContext
from tabletasks.core.errors import OwnershipMismatch
from tabletasks.core.jobs import (
    PROGRESS_CLAIMED,
    PROGRESS_DONE,
    PROGRESS_INPUT_FETCH,
    PROGRESS_RUNNING,
    JobStore,
)
from tabletasks.core.metrics import increment_counter
from tabletasks.io.files import FileService
from tabletasks.io.schemas import FileSource, JobOutcome, JobRecord, JobStatus, utcnow
from tabletasks.io.storage import BlobStore, read_body_bytes
from tabletasks.services.usage import UsageEventStore, write_usage_event

logger = logging.getLogger(__name__)


class JobRunner:
    def __init__(
        self,
        jobs: JobStore,
        files: FileService,
        blobs: BlobStore,
        registry: AppRegistry,
        usage: UsageEventStore,
    ):
        self.jobs = jobs
        self.files = files
        self.blobs = blobs
        self.registry = registry
        self.usage = usage

    def claim_next_queued_job(self) -> Optional[JobRecord]:
        candidate = self.jobs.select_oldest(JobStatus.QUEUED.value)
        if candidate is None:
            return None

        now = utcnow()
        patch = {
            "status": JobStatus.PROCESSING.value,
            "progress": PROGRESS_CLAIMED,
            "started_at": now,
            "updated_at": now,
            "error": None,
        }
        claimed = self.jobs.conditional_update(candidate.id, JobStatus.QUEUED.value, patch)
        if claimed == 0:
            logger.info(f"job {candidate.id} was claimed by another runner")
            return None

        increment_counter("jobs_claimed_total")
        logger.info(f"claimed job {candidate.id} (app={candidate.app_id})")
        # built from the claim patch; the row is not read back
        return candidate.model_copy(update=patch)

    def run_single_job(self, job: JobRecord, request_id: Optional[str] = None) -> JobOutcome:
        try:
            app = self.registry.lookup(job.app_id)
            input_file = self.files.get_file_by_id(job.input_file_id)
            if input_file.owner_id != job.owner_id:
                raise OwnershipMismatch()

            self._set_progress(job.id, PROGRESS_INPUT_FETCH)
            input_bytes = read_body_bytes(self.blobs.get(input_file.storage_key))

            self._set_progress(job.id, PROGRESS_RUNNING)
            options = app.validate_options(job.options)

            result = app.run(AppContext(
                owner_id=job.owner_id,
                job_id=job.id,
                input_file=input_file,
                input_bytes=input_bytes,
                options=options,
            ))

            result_file = self.files.upload_file(
                job.owner_id,
                result.output_filename,
                result.output_bytes,
                result.output_content_type,
                source=FileSource.JOB_RESULT,
            )
            self._complete_job(job.id, result.report, result_file.id)
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.warning(f"job {job.id} failed: {reason}")
            self._fail_job(job.id, reason)
            return JobOutcome(jobId=job.id, status="failed", error=reason)

        try:
            write_usage_event(
                self.usage,
                job.owner_id,
                "job_completed",
                resource_id=job.id,
                metadata={"app_id": job.app_id, "result_file_id": result_file.id},
                request_id=request_id,
            )
        except Exception as e:
            logger.warning(f"job {job.id}: could not record usage event: {e}")

        logger.info(f"job {job.id} completed (result file {result_file.id})")
        return JobOutcome(jobId=job.id, status="completed")

    def run_batch(self, limit: int = 1, request_id: Optional[str] = None) -> List[JobOutcome]:
        """Claim and run up to ``limit`` jobs one after another.

        Stops early when nothing could be claimed. A failing job is recorded and
        the batch moves on; store errors while claiming propagate.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")

        outcomes: List[JobOutcome] = []
        for _ in range(limit):
            job = self.claim_next_queued_job()
            if job is None:
                break
            outcomes.append(self.run_single_job(job, request_id))
        if outcomes:
            logger.info(f"batch finished: {len(outcomes)} job(s) processed")
        return outcomes

    def _set_progress(self, job_id: str, progress: int):
        self.jobs.update_unconditional(job_id, {"progress": progress, "updated_at": utcnow()})

    def _complete_job(self, job_id: str, report: dict, result_file_id: str):
        now = utcnow()
        self.jobs.update_unconditional(job_id, {
            "status": JobStatus.COMPLETED.value,
            "progress": PROGRESS_DONE,
            "result": report,
            "result_file_id": result_file_id,
            "completed_at": now,
            "updated_at": now,
        })
        increment_counter("jobs_finished_total", {"status": JobStatus.COMPLETED.value})

    def _fail_job(self, job_id: str, reason: str):
        now = utcnow()
        self.jobs.update_unconditional(job_id, {
            "status": JobStatus.FAILED.value,
            "progress": PROGRESS_DONE,
            "error": reason,
            "completed_at": now,
            "updated_at": now,
        })
        increment_counter("jobs_finished_total", {"status": JobStatus.FAILED.value})
