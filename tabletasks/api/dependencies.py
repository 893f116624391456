from __future__ import annotations
import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request

from tabletasks.core.runtime import Runtime


@dataclass
class User:
    id: str


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def get_current_user(x_user_id: Optional[str] = Header(None)) -> User:
    """Caller identity comes from the fronting gateway as ``X-User-Id``."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return User(id=x_user_id.strip())


def require_runner_token(
    request: Request,
    x_internal_runner_token: Optional[str] = Header(None),
) -> None:
    expected = get_runtime(request).settings.INTERNAL_RUNNER_TOKEN
    if not expected:
        raise HTTPException(status_code=403, detail="Internal runner endpoint is disabled")
    if not x_internal_runner_token or not hmac.compare_digest(x_internal_runner_token, expected):
        raise HTTPException(status_code=403, detail="Internal runner endpoint requires a valid runner token")
