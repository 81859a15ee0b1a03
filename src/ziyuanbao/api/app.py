"""
App Module - FastAPI application factory.
========================================

create_app() wires a PipelineContext onto app.state and mounts the admin
routes under /api. Pipeline exceptions map onto HTTP statuses here, once;
anything unexpected becomes a 500 without internal details.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ziyuanbao import __version__
from ziyuanbao.api.routes import router
from ziyuanbao.pipeline.context import PipelineContext, build_context
from ziyuanbao.shared.config import Settings, get_settings
from ziyuanbao.shared.errors import (
    AlreadyLinkedError,
    CloudDiskLinkError,
    ConfigurationError,
    FetchError,
    JobConflictError,
    NotFoundError,
    OutlineError,
    ZiyuanbaoError,
)
from ziyuanbao.shared.logging import configure_logging, get_logger

logger = get_logger(__name__)

ERROR_STATUS: dict[type, int] = {
    NotFoundError: 404,
    CloudDiskLinkError: 400,
    AlreadyLinkedError: 409,
    JobConflictError: 409,
    OutlineError: 422,
    FetchError: 502,
    ConfigurationError: 503,
}


def status_for(exc: ZiyuanbaoError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


def create_app(
    settings: Optional[Settings] = None,
    context: Optional[PipelineContext] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Settings used to build a context when none is given
        context: Pre-built pipeline context (tests inject fakes through it)

    Returns:
        FastAPI app
    """
    if context is None:
        settings = settings or get_settings()
        configure_logging(settings)
        context = build_context(settings)
    context.jobs.fail_interrupted()

    app = FastAPI(
        title="Ziyuanbao Import API",
        description="Feifei scrape-parse-import pipeline / 资源宝 菲菲资源导入",
        version=__version__,
    )
    app.state.context = context

    @app.exception_handler(ZiyuanbaoError)
    async def pipeline_error_handler(request: Request, exc: ZiyuanbaoError):
        status_code = status_for(exc)
        logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
        content: dict = {"detail": str(exc)}
        if isinstance(exc, OutlineError) and exc.raw_response:
            content["raw_response"] = exc.raw_response
        if isinstance(exc, JobConflictError):
            content["job_id"] = exc.job_id
        return JSONResponse(status_code=status_code, content=content)

    # Global exception handler, keeps internal details out of responses
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}: {exc}",
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    app.include_router(router, prefix="/api")
    logger.info("API application created")
    return app
