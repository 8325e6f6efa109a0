import uvicorn
from fastapi import FastAPI

from revealcards.api.routes.cards import router as cards_router
from revealcards.api.routes.checkout import router as checkout_router
from revealcards.api.routes.health import router as health_router
from revealcards.api.routes.internal_payments import router as internal_payments_router
from revealcards.core.config import get_settings
from revealcards.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Reveal Cards API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.include_router(health_router)
    app.include_router(cards_router)
    app.include_router(checkout_router)
    app.include_router(internal_payments_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "revealcards.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
