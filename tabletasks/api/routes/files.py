from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from tabletasks.api.dependencies import User, get_current_user, get_request_id, get_runtime
from tabletasks.core.metrics import increment_counter
from tabletasks.core.runtime import Runtime
from tabletasks.io.storage import read_body_bytes
from tabletasks.services.usage import write_usage_event

router = APIRouter(prefix="/api/v1/files", tags=["files"])


@router.get("/{file_id}/download")
def download_file(
    file_id: str,
    user: User = Depends(get_current_user),
    runtime: Runtime = Depends(get_runtime),
    request_id: Optional[str] = Depends(get_request_id),
):
    increment_counter("requests_total", {"route": "download"})
    record = runtime.files.get_file_for_owner(file_id, user.id)
    data = read_body_bytes(runtime.blobs.get(record.storage_key))

    write_usage_event(
        runtime.usage_store,
        user.id,
        "download",
        resource_id=record.id,
        metadata={"filename": record.filename},
        request_id=request_id,
    )
    return Response(
        content=data,
        media_type=record.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{record.filename}"',
            "Cache-Control": "no-store",
        },
    )
