"""PDF Tools backend - FastAPI application."""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pdftools.api.v1.health import router as health_router
from pdftools.api.v1.router import v1_router
from pdftools.config import Settings, settings as default_settings
from pdftools.errors import InternalError, InvalidInput, PdfToolsError
from pdftools.jobs.models import Clock, utcnow
from pdftools.logging_config import logger, setup_logging
from pdftools.services.container import build_services


def error_response(exc: PdfToolsError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PdfToolsError)
    async def handle_pdftools_error(request: Request, exc: PdfToolsError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = first.get("msg", "Invalid request")
        return error_response(InvalidInput(f"{where}: {message}" if where else message))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return error_response(InternalError())


def create_app(settings: Optional[Settings] = None, clock: Clock = utcnow) -> FastAPI:
    settings = settings or default_settings
    services = build_services(settings, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        logger.info(f"Starting PDF Tools backend on port {settings.port}")
        logger.info(f"Storage dir: {settings.storage_dir}")
        logger.info(f"Ghostscript: {settings.ghostscript_bin} (timeout {settings.ghostscript_timeout_seconds}s)")
        logger.info(f"TTL: compress/zip {settings.file_ttl_minutes}m, merge {settings.merge_ttl_minutes}m")

        # Reap whatever expired while we were down
        services.sweeper.sweep_once()
        await services.sweeper.start()
        logger.info("Expiry sweeper started")

        yield

        logger.info("Shutting down PDF Tools backend")
        await services.sweeper.stop()
        services.sweeper.sweep_once()

    app = FastAPI(
        title="PDF Tools Service",
        description="Compress and merge PDFs behind expiring, token-gated download links",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(f"HTTP {request.method} {request.url.path} - {response.status_code} ({duration_ms:.2f}ms)")
        return response

    register_error_handlers(app)

    # Mount routers
    app.include_router(health_router, tags=["health"])  # GET /health at root
    app.include_router(v1_router)  # All /v1/* endpoints
    return app


setup_logging(default_settings.log_level, default_settings.log_json)
app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("pdftools.main:app", host="0.0.0.0", port=default_settings.port)


if __name__ == "__main__":
    run()
