import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from tabletasks.api.dependencies import User, get_current_user, get_request_id, get_runtime
from tabletasks.core.metrics import increment_counter
from tabletasks.core.runtime import Runtime
from tabletasks.io.schemas import FileSource
from tabletasks.security.upload_guard import UploadGuard
from tabletasks.services.usage import enforce_rate_limit, write_usage_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/upload", tags=["upload"])


@router.post("", status_code=201)
async def upload_files(
    files: List[UploadFile] = File(...),
    user: User = Depends(get_current_user),
    runtime: Runtime = Depends(get_runtime),
    request_id: Optional[str] = Depends(get_request_id),
):
    increment_counter("requests_total", {"route": "upload"})
    enforce_rate_limit(runtime.usage_store, user.id, "upload", runtime.settings.RATE_LIMIT_PER_MINUTE)
    guard = UploadGuard(runtime.settings.MAX_UPLOAD_MB)

    if not files:
        raise HTTPException(status_code=400, detail="No files provided")

    stored = []
    for f in files:
        data, content_type = await guard.read_validated(f)
        record = runtime.files.upload_file(user.id, f.filename, data, content_type, source=FileSource.UPLOAD)
        write_usage_event(
            runtime.usage_store,
            user.id,
            "upload",
            resource_id=record.id,
            metadata={"filename": record.filename, "size_bytes": record.size_bytes},
            request_id=request_id,
        )
        stored.append(record.model_dump(mode="json", exclude={"storage_key"}))

    logger.info(f"{user.id} uploaded {len(stored)} file(s)")
    return {"files": stored}
