"""FastAPI application bootstrap and routing setup."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from termcolor import colored
from fastapi.middleware.cors import CORSMiddleware

from nanovision.config.settings import Settings, load_settings
from nanovision.services.edit_service.client import RemoteEditClient
from nanovision.services.session_service.main import EditingSession
from nanovision.utility.logger import AppLogger
from nanovision.handlers.error_handler import MapExceptions as me
from nanovision.controller.session_controller import router as session_router

logger = AppLogger.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Tear the session down with the application."""
    yield
    leaked = app.state.session.close()
    if leaked:
        logger.warning(f"{leaked} display handle(s) were still live at shutdown")


def create_app(
    settings: Optional[Settings] = None, client: Optional[RemoteEditClient] = None
) -> FastAPI:
    """Build the app with its own session; pass `client` to override the provider."""
    settings = settings or load_settings()
    AppLogger.init(level=settings.log_level, log_to_file=settings.log_to_file)

    app = FastAPI(title="NanoVision", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.session = EditingSession.build(settings, client)
    me.register_exception_handlers(app)

    logger.info(
        colored(
            f"Running in {settings.run_mode} mode with provider {app.state.session.client.provider_name}",
            "yellow",
        )
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )
    app.include_router(session_router)

    @app.get("/", tags=["Health"])
    def root():
        """Health probe indicating API wiring and logger setup succeeded."""
        return {"status": "ok", "message": "Setup Successfull", "mode": settings.run_mode}

    @app.get("/health", tags=["Health"])
    def health_check():
        """Secondary health endpoint used by deployments and monitoring probes."""
        return {
            "status": "ok",
            "message": "FastAPI server running!",
            "mode": settings.run_mode,
            "provider": app.state.session.client.provider_name,
        }

    return app


app = create_app()
