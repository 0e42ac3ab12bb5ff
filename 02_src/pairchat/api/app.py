"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..app import Application
from .routes import control, participants, reporting


# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan."""
    application = get_app()
    await application.start()
    sim_instance = control.get_sim_instance()
    if sim_instance and hasattr(sim_instance, "set_tracker"):
        sim_instance.set_tracker(application.tracker)
    yield
    if sim_instance:
        await sim_instance.stop()
    await application.stop()


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    global _app
    if application is not None:
        _app = application

    fastapi_app = FastAPI(
        title="pairchat API",
        description="Anonymous one-to-one pairing and message relay",
        version="0.1.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:5174"],  # Vite default
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application = get_app()
    fastapi_app.include_router(participants.create_participants_router(application))
    fastapi_app.include_router(reporting.create_reporting_router(application))
    fastapi_app.include_router(control.create_control_router(application))

    return fastapi_app
