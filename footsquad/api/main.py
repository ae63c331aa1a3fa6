"""
FootSquad Match API Server

FastAPI server for match scheduling, opponent negotiation, rosters, score
consensus, Man of the Match voting and peer ratings.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from footsquad.api.routes import router, limiter as routes_limiter
from footsquad.alembic.env import upgrade_to_head
from footsquad.database import db
from footsquad.services.redis_service import close_redis_connection
from footsquad.services.websocket_manager import get_websocket_manager

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up FootSquad Match API...")

    # Migrations are idempotent; in Docker the entrypoint has usually run them already
    if os.getenv("RUN_MIGRATIONS_ON_STARTUP", "true").lower() == "true":
        try:
            await upgrade_to_head()
        except Exception as e:
            logger.error(f"Database migration failed: {e}", exc_info=True)

    # Fallback for tables not yet created by migrations
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    get_websocket_manager().start_pruning()

    yield

    logger.info("Shutting down FootSquad Match API...")
    get_websocket_manager().stop_pruning()
    try:
        await close_redis_connection()
    except Exception as e:
        logger.error(f"Error closing Redis connection: {e}", exc_info=True)


app = FastAPI(
    title="FootSquad Match API",
    description="Match lifecycle and consensus engine for amateur football teams",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:8081").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
