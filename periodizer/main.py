"""FastAPI application entry point."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from periodizer.database import init_db
from periodizer.logging_config import configure_logging
from periodizer.routers import health, plans, teams


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Squad Periodization API", lifespan=lifespan)


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Simple health probe for liveness checks."""
    return {"status": "ok"}


# Include routers
app.include_router(health.router)
app.include_router(teams.router)
app.include_router(plans.router)
