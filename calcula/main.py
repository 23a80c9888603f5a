"""
Calcula backend API
Inventory costing, plan limits and the affiliate program.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

from calcula.core.config import CORS_ORIGINS, DATABASE_URL, LOG_LEVEL

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
)

logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Run Alembic migrations on startup. Uses alembic.ini and DATABASE_URL.
    Fails startup if migrations fail, so the DB is never left out of sync."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return
    if not os.getenv("DATABASE_URL"):
        logger.error("DATABASE_URL is not set. Alembic migrations will not run.")
        return
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise


from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from calcula.api.routes import (
    activity,
    affiliates,
    configurations,
    functions,
    plans,
    pricing,
    redirect,
    stripe_webhook,
)
from calcula.core.errors import CalculaError, RemoteServiceError
from calcula.db.base import Base
from calcula.db.session import engine
# Import all models to ensure they're registered with Base
import calcula.models  # noqa: F401

app = FastAPI(title="Calcula API")


@app.on_event("startup")
async def startup_event():
    """Create tables, then run Alembic migrations on every server restart."""
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error("Error creating tables: %s", e)
        raise

    if engine.dialect.name != "sqlite":
        run_migrations()


@app.exception_handler(CalculaError)
async def calcula_error_handler(request: Request, exc: CalculaError):
    if isinstance(exc, RemoteServiceError):
        logger.error("Remote service failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_public()})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{location}: {first.get('msg')}" if location else str(first.get("msg", "Invalid request"))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Internal server error"})


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(plans.router, prefix="/plans", tags=["Plans"])
app.include_router(affiliates.router, prefix="/affiliates", tags=["Affiliates"])
app.include_router(functions.router, prefix="/functions", tags=["Functions"])
app.include_router(stripe_webhook.router, prefix="/functions", tags=["Stripe"])
app.include_router(configurations.router, prefix="/configurations", tags=["Configurations"])
app.include_router(activity.router, prefix="/activity", tags=["Activity"])
app.include_router(pricing.router, prefix="/pricing", tags=["Pricing"])
app.include_router(redirect.router, tags=["Affiliates"])


@app.options("/{rest_of_path:path}")
async def preflight(rest_of_path: str):
    """Empty 200 for any preflight the CORS middleware lets through."""
    return Response(status_code=status.HTTP_200_OK)


@app.get("/")
def root():
    return {"message": "Calcula API is running"}


@app.get("/health")
def health():
    return {"status": "ok"}
