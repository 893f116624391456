from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, StrictBool
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FileSource(str, Enum):
    UPLOAD = "upload"
    JOB_RESULT = "job_result"


class JobRecord(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str
    owner_id: str
    app_id: str
    input_file_id: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(0, ge=0, le=100)
    options: Dict[str, Any] = Field(default_factory=dict)
    result: Dict[str, Any] = Field(default_factory=dict)
    result_file_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class FileRecord(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str
    owner_id: str
    storage_key: str
    filename: str
    content_type: str
    size_bytes: int
    content_hash: str
    source: FileSource = FileSource.UPLOAD
    created_at: datetime = Field(default_factory=utcnow)


class UsageEvent(BaseModel):
    id: str
    owner_id: str
    event_type: str
    resource_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class JobOutcome(BaseModel):
    jobId: str
    status: Literal["completed", "failed"]
    error: Optional[str] = None


class CreateJobRequest(BaseModel):
    app_id: str = Field(..., min_length=1)
    input_file_id: str = Field(..., min_length=1)
    options: Dict[str, Any] = Field(default_factory=dict)


class RunBatchRequest(BaseModel):
    limit: int = Field(1, ge=1, le=10)


class RunBatchResponse(BaseModel):
    processed: int
    outcomes: List[JobOutcome]


# --- profiler ---------------------------------------------------------------

class CsvProfilerOptions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    removeDuplicateRows: StrictBool = False


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TypeBreakdown(BaseModel):
    number: int = 0
    boolean: int = 0
    date: int = 0
    string: int = 0


class ColumnProfile(_CamelModel):
    name: str
    inferred_type: Literal["number", "boolean", "date", "string"]
    type_breakdown: TypeBreakdown
    missing_count: int
    missing_percent: float
    unique_count: int
    duplicate_value_count: int
    min: Union[float, str, None] = None
    max: Union[float, str, None] = None
    sample_values: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ReportSummary(_CamelModel):
    row_count: int
    cleaned_row_count: int
    column_count: int
    duplicate_row_count: int
    duplicate_row_percent: float
    remove_duplicate_rows_applied: bool


class ProfileReport(_CamelModel):
    schema_version: str = "1.0"
    generated_at: str
    summary: ReportSummary
    columns: List[ColumnProfile]
    warnings: List[str] = Field(default_factory=list)
