from typing import Optional

from fastapi import APIRouter, Depends, Query

from tabletasks.api.dependencies import User, get_current_user, get_request_id, get_runtime
from tabletasks.core.metrics import increment_counter
from tabletasks.core.runtime import Runtime
from tabletasks.io.schemas import CreateJobRequest
from tabletasks.services.usage import enforce_rate_limit, write_usage_event

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])


@router.post("", status_code=202)
def create_job(
    body: CreateJobRequest,
    user: User = Depends(get_current_user),
    runtime: Runtime = Depends(get_runtime),
    request_id: Optional[str] = Depends(get_request_id),
):
    increment_counter("requests_total", {"route": "create_job"})
    enforce_rate_limit(runtime.usage_store, user.id, "job_created", runtime.settings.RATE_LIMIT_PER_MINUTE)
    job = runtime.jobs.create_job(user.id, body.app_id, body.input_file_id, body.options)
    write_usage_event(
        runtime.usage_store,
        user.id,
        "job_created",
        resource_id=job.id,
        metadata={"app_id": job.app_id},
        request_id=request_id,
    )
    return {"job": job.model_dump(mode="json")}


@router.get("")
def list_jobs(
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    runtime: Runtime = Depends(get_runtime),
):
    increment_counter("requests_total", {"route": "list_jobs"})
    jobs = runtime.jobs.list_recent_jobs(user.id, limit)
    return {"jobs": [job.model_dump(mode="json") for job in jobs]}


@router.get("/{job_id}")
def get_job(
    job_id: str,
    user: User = Depends(get_current_user),
    runtime: Runtime = Depends(get_runtime),
):
    increment_counter("requests_total", {"route": "get_job"})
    return {"job": runtime.jobs.get_job(user.id, job_id).model_dump(mode="json")}
