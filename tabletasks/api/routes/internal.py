import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends

from tabletasks.api.dependencies import get_request_id, get_runtime, require_runner_token
from tabletasks.core.metrics import increment_counter
from tabletasks.core.runtime import Runtime
from tabletasks.io.schemas import RunBatchRequest, RunBatchResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/internal",
    tags=["internal"],
    dependencies=[Depends(require_runner_token)],
)


@router.post("/jobs/run", response_model=RunBatchResponse)
def run_jobs(
    body: Optional[RunBatchRequest] = Body(None),
    runtime: Runtime = Depends(get_runtime),
    request_id: Optional[str] = Depends(get_request_id),
):
    """Run one batch of queued jobs in this request. Meant for cron/queue triggers."""
    increment_counter("requests_total", {"route": "run_jobs"})
    limit = (body or RunBatchRequest()).limit
    outcomes = runtime.runner.run_batch(limit, request_id=request_id)
    return RunBatchResponse(processed=len(outcomes), outcomes=outcomes)
