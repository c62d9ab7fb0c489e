"""FastAPI application factory."""

import logging

from fastapi import FastAPI

from matchreel.api.replay import router as replay_router
from matchreel.config import Settings

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the Matchreel FastAPI application."""
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.matchreel_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Matchreel",
        version="0.1.0",
        description="Moment detection, redaction and commentary for match replays",
        docs_url="/docs" if settings.matchreel_env != "production" else None,
    )
    app.state.settings = settings

    app.include_router(replay_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "env": settings.matchreel_env}

    logger.info("app_created env=%s default_mode=%s", settings.matchreel_env, settings.matchreel_default_mode)
    return app


app = create_app()
