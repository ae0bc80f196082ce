"""FastAPI entrypoint for the order scheduling and credit settlement engine."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from canteen_engine.api.v1.api import api_router
from canteen_engine.core.config import settings
from canteen_engine.db.base import Base
from canteen_engine.db.session import SessionLocal, engine

logger = logging.getLogger(__name__)

app = FastAPI(title="Canteen Settlement Engine", debug=settings.debug)
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
def startup() -> None:
    logger.info("[BOOTSTRAP] env=%s, database=%s", settings.app_env, engine.url.render_as_string(hide_password=True))
    if settings.jwt_secret_key.startswith("dev-only"):
        logger.warning("JWT_SECRET_KEY not set; using development fallback secret.")
    Base.metadata.create_all(bind=engine)


@app.get("/health")
def health() -> dict[str, str]:
    with SessionLocal() as session:
        session.connection()
    return {"status": "ok"}
