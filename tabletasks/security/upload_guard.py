import mimetypes
from pathlib import Path

from fastapi import HTTPException, UploadFile

from tabletasks.io.readers import XLSX_CONTENT_TYPE


class UploadGuard:
    ALLOWED_CONTENT_TYPES = {"text/csv", XLSX_CONTENT_TYPE}
    # some browsers send these for csv/xlsx; resolved from the extension instead
    GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "application/vnd.ms-excel", "text/plain"}

    def __init__(self, max_size_mb: int = 50):
        self.max_size_bytes = max_size_mb * 1024 * 1024

    def resolve_content_type(self, file: UploadFile) -> str:
        content_type = (file.content_type or "").split(";")[0].strip().lower()
        if content_type in self.GENERIC_CONTENT_TYPES:
            content_type = mimetypes.guess_type(file.filename or "")[0] or content_type
            if Path(file.filename or "").suffix.lower() == ".xlsx":
                content_type = XLSX_CONTENT_TYPE
        return content_type

    async def read_validated(self, file: UploadFile) -> tuple[bytes, str]:
        """Check name, type and size; return ``(data, content_type)``."""
        if not file.filename:
            raise HTTPException(status_code=400, detail="No file provided")

        content_type = self.resolve_content_type(file)
        if content_type not in self.ALLOWED_CONTENT_TYPES:
            raise HTTPException(status_code=415, detail=f"Unsupported content type: {content_type or 'unknown'}")

        data = await file.read(self.max_size_bytes + 1)
        if len(data) > self.max_size_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum: {self.max_size_bytes / 1024 / 1024:.0f}MB",
            )
        if not data:
            raise HTTPException(status_code=400, detail="Uploaded file is empty")
        return data, content_type
