"""
FastAPI application entry point.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from clipmerge.api.merge import router as merge_router
from clipmerge.core.config import Settings, settings as default_settings
from clipmerge.core.exceptions import MergeServiceError
from clipmerge.core.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def merge_error_handler(request: Request, exc: MergeServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", exc_info=exc, extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.debug)
    settings.ensure_directories()

    app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug)
    app.add_exception_handler(MergeServiceError, merge_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(merge_router)
    app.mount("/storage", StaticFiles(directory=settings.storage_dir), name="storage")

    logger.info(f"{settings.app_name} {settings.app_version} ready ({settings.environment})")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.api_host, port=default_settings.api_port)
