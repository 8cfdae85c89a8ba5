"""
Hockey club match API.

Serves match registrations, position lineups, notification preferences and
the in-app notification feed.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn

from hockey_backend.api.routes import router
from hockey_backend.database import db
from hockey_backend.services import settings_service


def _configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


_configure_logging()
logger = logging.getLogger(__name__)


async def _announce_delivery_mode() -> None:
    async with db.AsyncSessionLocal() as session:
        if await settings_service.is_demo_mode(session):
            logger.info("Demo mode: email and SMS are captured for the demo inbox")
        else:
            logger.info("Live mode: email and SMS go to the configured transports")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await db.init_database()
    except Exception as e:
        # The API still serves health checks while the database is down
        logger.error(f"Schema setup failed: {e}", exc_info=True)

    try:
        await _announce_delivery_mode()
    except Exception as e:
        logger.warning(f"Could not read demo mode setting: {e}")

    yield

    logger.info("Shutting down match API")
    await settings_service.close_redis_connection()
    await db.dispose_database()


app = FastAPI(
    title="Hockey Club Match API",
    description="Match registrations, lineups and player notifications",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(
        "hockey_backend.api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
