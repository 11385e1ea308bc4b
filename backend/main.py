"""
PatrolSheet - Security Patrol Lifecycle Service
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database import engine, Base
from errors import PatrolError
from jwt_auth import get_current_actor
from routers import patrols, patrol_logs, officers, dashboard

logging.basicConfig(
    level=os.environ.get("PATROL_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CORS_ORIGINS = [o.strip() for o in os.environ.get("PATROL_CORS_ORIGINS", "*").split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("PatrolSheet starting up...")
    Base.metadata.create_all(bind=engine)
    yield
    # Shutdown
    logger.info("PatrolSheet shutting down...")

app = FastAPI(
    title="PatrolSheet API",
    description="Scheduled security patrols: assignment, lifecycle, checkpoints and activity log",
    version="1.0.0",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(PatrolError)
async def patrol_error_handler(request: Request, exc: PatrolError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Something went wrong, please try again later"}
    )


# Routers - every route requires a bearer token
authenticated = [Depends(get_current_actor)]

app.include_router(dashboard.router, prefix="/api/patrol", tags=["Dashboard"], dependencies=authenticated)
app.include_router(patrols.router, prefix="/api/patrol", tags=["Patrols"], dependencies=authenticated)
app.include_router(patrol_logs.router, prefix="/api/patrol", tags=["Patrol Logs"], dependencies=authenticated)
app.include_router(patrol_logs.logs_router, prefix="/api/logs", tags=["Patrol Logs"], dependencies=authenticated)
app.include_router(officers.router, prefix="/api/officers", tags=["Officers"], dependencies=authenticated)

@app.get("/")
async def root():
    return {"status": "ok", "service": "PatrolSheet API", "version": "1.0.0"}

@app.get("/health")
async def health():
    return {"status": "healthy"}
