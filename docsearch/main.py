"""
Main FastAPI application entry point.
Responsibilities: App setup, router registration, startup/shutdown hooks.
"""
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings
from .container import Services, build_services
from .errors import DocSearchError
from .logging_config import logger, setup_logging
from .routes import documents, search


async def docsearch_error_handler(request: Request, exc: DocSearchError) -> JSONResponse:
    """Render any DocSearchError as structured JSON with its status code."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log("Request failed", path=request.url.path, code=exc.error_code, error=exc.message, context=exc.context)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built collaborators (tests). When omitted they are
            built from the environment at startup and closed at shutdown.
    """
    app = FastAPI(title="Docs Search", version=__version__)

    app.include_router(documents.router)
    app.include_router(search.router)
    app.add_exception_handler(DocSearchError, docsearch_error_handler)

    @app.get("/api/health")
    async def health():
        return {"ok": True}

    @app.on_event("startup")
    async def startup_event():
        """Configure logging and build database pool, store and embedder."""
        if services is not None:
            app.state.services = services
            app.state.owns_services = False
            return
        settings = Settings.from_env()
        setup_logging(settings)
        logger.info("Building services...")
        app.state.services = build_services(settings)
        app.state.owns_services = True

    @app.on_event("shutdown")
    async def shutdown_event():
        """Release pooled connections and provider clients."""
        if getattr(app.state, "owns_services", False):
            app.state.services.close()
        logger.info("Application shutting down")

    return app


app = create_app()
