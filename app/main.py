import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.routes.products import router as products_router
from app.api.routes.transactions import router as transactions_router
from app.core.config import Settings, settings as default_settings
from app.core.logging import configure_logging
from app.db.database import Database
from app.services.uploads import PUBLIC_PREFIX, ensure_upload_dir

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    configure_logging()
    settings = settings or default_settings
    database = database or Database(settings.database_url)

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        if settings.auto_create_schema:
            database.create_all()
        logger.info("%s started", settings.app_name)
        try:
            yield
        finally:
            database.dispose()
            logger.info("%s stopped", settings.app_name)

    application = FastAPI(title=settings.app_name, lifespan=lifespan)
    application.state.database = database
    application.state.settings = settings
    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(products_router)
    application.include_router(transactions_router)
    application.mount(
        PUBLIC_PREFIX,
        StaticFiles(directory=str(ensure_upload_dir(settings.upload_dir))),
        name="uploads",
    )

    @application.get("/health", tags=["System"])
    def health_check():
        return {"status": "ok"}

    return application


app = create_app()
