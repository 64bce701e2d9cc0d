import os
import logging
from logging.handlers import RotatingFileHandler
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from berrymx.auth.verifier import RequestVerifier, SignatureVerifier, SshKeygenVerifier
from berrymx.core.exceptions import BerryMXException
from berrymx.core.resources import RESOURCES
from berrymx.core.settings import ServerConfig, resolve_config
from berrymx.core.store import ResourceStore
from berrymx.monitoring import PrometheusMiddleware, metrics_endpoint
from berrymx.services.translate import TranslationClient
from .models import ErrorResponse, HealthResponse
from .routes import router

logger = logging.getLogger("berrymx")

_NO_STORE = {"Cache-Control": "no-store"}


def setup_logging(config: ServerConfig) -> None:
    """配置日志记录（重复调用时不重复添加处理器）"""
    logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    if getattr(logger, "_berrymx_configured", False):
        return
    formatter = logging.Formatter(config.log_format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.log_file:
        try:
            os.makedirs(os.path.dirname(config.log_file) or ".", exist_ok=True)
            file_handler = RotatingFileHandler(
                config.log_file,
                maxBytes=config.log_max_bytes,
                backupCount=config.log_backup_count,
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning(f"File logging disabled, cannot open {config.log_file}: {str(e)}")
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger._berrymx_configured = True


def _error_body(detail, error_code: Optional[str]) -> dict:
    return ErrorResponse(error=str(detail), error_code=error_code).model_dump()


def create_app(
    config: Optional[ServerConfig] = None,
    signature_verifier: Optional[SignatureVerifier] = None,
    translator: Optional[TranslationClient] = None,
) -> FastAPI:
    """创建 FastAPI 应用"""
    config = config or resolve_config()
    setup_logging(config)

    store = ResourceStore(config.data_dir)
    backend = signature_verifier or SshKeygenVerifier(
        config.allowed_signers,
        namespace=config.ssh_namespace,
        ssh_keygen=config.ssh_keygen_path,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting BerryMX with data in {config.data_dir}")
        if config.seed_dir:
            store.seed_from(config.seed_dir)
        if not os.path.exists(config.allowed_signers):
            logger.warning(f"Allowed signers file not found at {config.allowed_signers}; admin writes will fail")
        yield
        # Shutdown
        logger.info("Shutting down...")

    app = FastAPI(
        title=config.api_title,
        description=config.api_description,
        version=config.api_version,
        docs_url="/api-docs",
        openapi_url="/api-docs/openapi.json",
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.store = store
    app.state.verifier = RequestVerifier(backend, clock_skew_seconds=config.clock_skew_seconds)
    app.state.translator = translator or TranslationClient(
        config.translate_url,
        api_key=config.translate_key,
        timeout=config.translate_timeout,
    )

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(PrometheusMiddleware)

    @app.exception_handler(BerryMXException)
    async def berrymx_exception_handler(request: Request, exc: BerryMXException):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail} {exc.error_data}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
        headers = dict(_NO_STORE)
        headers.update(exc.headers or {})
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, exc.error_code),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, None),
            headers=dict(_NO_STORE),
        )

    # 全局异常处理
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception occurred")
        return JSONResponse(
            status_code=500,
            content=_error_body("An internal server error occurred", "INTERNAL_ERROR"),
        )

    @app.get("/health", response_model=HealthResponse, tags=["monitoring"])
    async def health_check():
        return HealthResponse(
            timestamp=datetime.now(timezone.utc).isoformat(),
            resources=len(RESOURCES),
        )

    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)
    app.include_router(router)

    if config.site_root and os.path.isdir(config.site_root):
        app.mount("/", StaticFiles(directory=config.site_root, html=True), name="site")
        logger.info(f"Serving static site from {config.site_root}")

    return app
