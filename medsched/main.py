import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

# Import models so every table is registered with Base before create_all
from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS
from .database import Base, engine, get_db
from .domain.recurring.router import router as recurring_router
from .domain.slots.router import router as slots_router
from .domain.spontaneous.router import router as spontaneous_router
from .domain.visits.router import router as visits_router
from .exceptions import SchedulingError, ValidationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="MedSched API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters share the VALIDATION_ERROR shape"""
    errors = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    summary = "; ".join(f"{'.'.join(e['loc'])}: {e['message']}" for e in errors)
    logger.warning(f"Validation error for {request.url.path}: {summary}")
    error = ValidationError(f"Invalid request: {summary}", details={"errors": errors})
    return JSONResponse(status_code=422, content=error.to_dict())


@app.exception_handler(SchedulingError)
async def scheduling_exception_handler(request: Request, exc: SchedulingError):
    """Render booking engine errors as {code, message, details} with their mapped status"""
    if exc.http_status >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.code} - {exc.message}")
    else:
        logger.warning(f"⚠️ {request.method} {request.url.path}: {exc.code} - {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

app.include_router(slots_router)
app.include_router(recurring_router)
app.include_router(visits_router)
app.include_router(spontaneous_router)


@app.get("/")
def root():
    return {"message": "MedSched API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/health/db")
def database_health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": {"connected": True}}
    except Exception as e:
        logger.error(f"❌ Database health check failed: {e}")
        return {"status": "unhealthy", "database": {"connected": False, "error": str(e)}}
