import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import router as api_router, root_router
from .errors import GatewayError
from .orchestrator import ConnectionOrchestrator
from .registry import SessionRegistry
from .routeros.client_base import TransportAdapter
from .routeros.factory import make_adapters
from .settings import AppSettings, settings as default_settings


logger = logging.getLogger(__name__)


def configure_logging(settings: AppSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _error(message: str) -> JSONResponse:
    # Every failure is reported the same way: HTTP 500 with a flat error message
    return JSONResponse(status_code=500, content={"error": message})


def create_app(
    settings: Optional[AppSettings] = None,
    adapters: Optional[Sequence[TransportAdapter]] = None,
) -> FastAPI:
    settings = settings or default_settings
    registry = SessionRegistry()
    orchestrator = ConnectionOrchestrator(registry, adapters if adapters is not None else make_adapters(settings))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for adapter in orchestrator.adapters:
            if not adapter.available:
                logger.warning("%s not available, %s connections will fail", adapter.library, adapter.kind.value)
        yield
        logger.info("Shutting down, closing %d router session(s)", len(registry))
        await registry.close_all()

    app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug, lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry
    app.state.orchestrator = orchestrator

    @app.middleware("http")
    async def log_errors(request: Request, call_next):
        # Registered before CORS so the error response still carries CORS headers
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception("Unhandled error on %s", request.url)
            return _error(str(e) or type(e).__name__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayError)
    async def gateway_error(request: Request, exc: GatewayError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error(str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return _error(f"Invalid request: {details}")

    app.include_router(root_router)
    app.include_router(api_router)
    return app


configure_logging(default_settings)
app = create_app()
