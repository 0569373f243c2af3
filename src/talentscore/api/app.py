from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from talentscore.api.routes import router as api_router
from talentscore.config import get_settings
from talentscore.db.init import init_database
from talentscore.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()

    app = FastAPI(title=settings.app_name)

    @app.on_event("startup")
    def _startup() -> None:
        init_database()

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error in %s", request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})

    @app.get("/health")
    def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(api_router)
    return app
