"""
Dataset Validation API Service - FastAPI Application.

REST API around the consensus engine that promotes community-validated
records to a verified or rejected state.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from validation_api.config import get_settings
from validation_api.database import init_db
from validation_api.routes import (
    votes_router, records_router, outcomes_router, users_router, reconcile_router
)
from validation_api.scheduler import start_scheduler, stop_scheduler


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Dataset Validation API Service...")
    init_db()
    logger.info("Database initialized")

    if settings.scheduler_enabled:
        start_scheduler()

    yield

    # Shutdown
    logger.info("Shutting down Dataset Validation API Service...")
    stop_scheduler()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="""
## Dataset Validation API

Contributors vote on whether data records are correct. When enough votes
agree, the record is finalized and everyone who agreed earns points.

### Key Concepts

- **Records**: Pairs of data fields awaiting validation
- **Votes**: A contributor's true/false judgment on a record
- **Outcomes**: The finalized verified/rejected artifact, with its contributors
- **Points**: Rewards earned once per finalized record a user agreed with

### API Flow

1. A contributor fetches a pending record (GET /records/next)
2. The contributor votes on it (POST /votes)
3. The vote that pushes one verdict past the threshold finalizes the record
4. Outcomes and balances are available (GET /outcomes, GET /users/{id}/points)
    """,
    version=settings.app_version,
    lifespan=lifespan,
)

# Configure CORS
origins = settings.allowed_origins.split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(records_router, prefix="/api")
app.include_router(votes_router, prefix="/api")
app.include_router(outcomes_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(reconcile_router, prefix="/api")


# Root endpoint
@app.get("/")
def root():
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Community consensus validation for data records",
        "docs_url": "/docs",
        "openapi_url": "/openapi.json",
        "endpoints": {
            "records": "/api/records",
            "votes": "/api/votes",
            "outcomes": "/api/outcomes",
            "users": "/api/users",
            "reconcile": "/api/reconcile",
            "health": "/api/reconcile/health",
        }
    }


# Health check at root level too
@app.get("/health")
def root_health():
    """Quick health check."""
    return {"status": "ok", "version": settings.app_version}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "validation_api.app:app",
        host="0.0.0.0",
        port=8001,
        reload=settings.debug
    )
