from fastapi import FastAPI

from garment_recolor.api.routes.health import router as health_router
from garment_recolor.api.routes.recolor import router as recolor_router
from garment_recolor.config import settings
from garment_recolor.logging_config import setup_logging


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title=settings.app_name)

    app.include_router(health_router, prefix="/api/v1")
    app.include_router(recolor_router, prefix="/api/v1")
    return app


app = create_app()
