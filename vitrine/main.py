import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vitrine.api.routes import router
from vitrine.config import Settings, settings
from vitrine.errors import VitrineError
from vitrine.services.container import build_container


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    config: Settings = app.state.settings
    _configure_logging(config.LOG_LEVEL)
    logger = logging.getLogger(__name__)
    logger.info(
        "Vitrine moderation starting | submissions=%s | catalog=%s | port=%s",
        config.SUBMISSIONS_DB_PATH, config.CATALOG_DB_PATH, config.PORT,
    )
    container = build_container(
        config.SUBMISSIONS_DB_PATH, config.CATALOG_DB_PATH, config.STORE_TIMEOUT_SECONDS
    )
    container.migrate()
    app.state.container = container
    yield
    logger.info("Vitrine moderation shutting down")


def create_app(config: Settings | None = None) -> FastAPI:
    app = FastAPI(title="Vitrine Moderation", version="1.0.0", lifespan=lifespan)
    app.state.settings = config or settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(VitrineError)
    async def vitrine_exception_handler(request: Request, exc: VitrineError) -> JSONResponse:
        log = logging.getLogger(__name__)
        if exc.status_code >= 500:
            log.error("[api] %s | path=%s | %s", exc.category, request.url.path, exc.message)
        else:
            log.info("[api] %s | path=%s | %s", exc.category, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "error",
                "category": exc.category,
                "message": exc.message,
                "retryable": exc.retryable,
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logging.getLogger(__name__).exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"},
        )

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("vitrine.main:app", host="0.0.0.0", port=settings.PORT, log_level=settings.LOG_LEVEL)
