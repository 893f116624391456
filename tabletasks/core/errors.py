"""Error taxonomy shared by the runner, the apps and the HTTP surface."""
from __future__ import annotations
from typing import Any, Dict, List, Optional

PROBLEM_BASE = "https://tabletasks.dev/problems"


class AppError(Exception):
    """Base error. ``str(err)`` is the human-readable message stored on failed jobs."""

    kind: str = "internal_error"
    status: int = 500
    title: str = "Internal error"

    def __init__(self, detail: Optional[str] = None, *, title: Optional[str] = None):
        self.detail = detail
        if title:
            self.title = title
        super().__init__(detail or self.title)

    @property
    def type(self) -> str:
        return f"{PROBLEM_BASE}/{self.kind.replace('_', '-')}"


class UnknownApp(AppError):
    kind = "unknown_app"
    status = 400
    title = "Unknown app"

    def __init__(self, app_id: str):
        self.app_id = app_id
        super().__init__(f"App '{app_id}' is not registered.")


class InvalidOptions(AppError):
    kind = "invalid_options"
    status = 400
    title = "Invalid options"

    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = errors
        summary = "; ".join(f"{e['path'] or '<root>'}: {e['message']}" for e in errors)
        super().__init__(f"Options do not match schema: {summary}")


class OwnershipMismatch(AppError):
    kind = "ownership_mismatch"
    status = 403
    title = "Job input ownership mismatch"

    def __init__(self, detail: str = "Input file does not belong to job owner."):
        super().__init__(detail)


class InputFormatInvalid(AppError):
    kind = "input_format_invalid"
    status = 400
    title = "Invalid input file"


class UnsupportedInput(AppError):
    kind = "input_unsupported"
    status = 400
    title = "Unsupported input file type"


class NotFound(AppError):
    kind = "not_found"
    status = 404
    title = "Not found"


class StoreUnavailable(AppError):
    kind = "store_unavailable"
    status = 503
    title = "Store unavailable"


class RateLimited(AppError):
    kind = "rate_limit"
    status = 429
    title = "Rate limit exceeded"


class UpstreamUnavailable(AppError):
    kind = "upstream_unavailable"
    status = 502
    title = "Upstream unavailable"


def to_problem(error: BaseException, request_id: Optional[str] = None) -> Dict[str, Any]:
    """Build an RFC 7807 problem document for an error."""
    if isinstance(error, AppError):
        problem: Dict[str, Any] = {
            "type": error.type,
            "title": error.title,
            "status": error.status,
            "detail": error.detail,
        }
        if isinstance(error, InvalidOptions):
            problem["errors"] = error.errors
    else:
        problem = {
            "type": f"{PROBLEM_BASE}/internal-error",
            "title": "Internal server error",
            "status": 500,
            "detail": "Unexpected server error.",
        }
    if request_id:
        problem["request_id"] = request_id
    return problem
