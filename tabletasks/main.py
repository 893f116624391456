import logging
import uuid
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from tabletasks.api.routes import apps as apps_routes
from tabletasks.api.routes import files as files_routes
from tabletasks.api.routes import internal as internal_routes
from tabletasks.api.routes import jobs as jobs_routes
from tabletasks.api.routes import upload as upload_routes
from tabletasks.core.config import settings
from tabletasks.core.errors import AppError, to_problem
from tabletasks.core.logging import setup_logging
from tabletasks.core.metrics import render_latest
from tabletasks.core.runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)

PROBLEM_CONTENT_TYPE = "application/problem+json"


def _problem_response(problem: dict, request_id: Optional[str]) -> JSONResponse:
    headers = {"X-Request-Id": request_id} if request_id else None
    return JSONResponse(problem, status_code=problem["status"], media_type=PROBLEM_CONTENT_TYPE, headers=headers)


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    setup_logging(settings.LOG_LEVEL)
    app = FastAPI(title="TableTasks API", version="0.1.0")
    app.state.runtime = runtime or build_runtime(settings)

    app.include_router(apps_routes.router)
    app.include_router(upload_routes.router)
    app.include_router(files_routes.router)
    app.include_router(jobs_routes.router)
    app.include_router(internal_routes.router)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} [{request_id}]")
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        request_id = getattr(request.state, "request_id", None)
        if exc.status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _problem_response(to_problem(exc, request_id), request_id)

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        request_id = getattr(request.state, "request_id", None)
        problem = {
            "type": "about:blank",
            "title": str(exc.detail),
            "status": exc.status_code,
            "detail": str(exc.detail),
        }
        if request_id:
            problem["request_id"] = request_id
        return _problem_response(problem, request_id)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/metrics")
    def metrics():
        body, content_type = render_latest()
        return Response(content=body, media_type=content_type)

    return app


app = create_app()
