"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from record_transfer.api.exports import router as exports_router
from record_transfer.api.imports import router as imports_router
from record_transfer.config import get_settings
from record_transfer.database import engine, Base
from record_transfer.errors import (
    CreditError,
    InfrastructureError,
    JobNotFoundError,
    JobStateError,
    ParseError,
    TransferError,
)
from record_transfer.models import Document, ExportJob, ImportJob, TeamCredit  # noqa: F401 - Import to register models

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),  # Console output
        logging.FileHandler("app.log"),  # File output
    ],
)

# Set specific log levels for noisy libraries
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("celery").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = [
    (JobNotFoundError, 404),
    (JobStateError, 409),
    (CreditError, 412),
    (ParseError, 400),
    (InfrastructureError, 503),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup."""
    Base.metadata.create_all(bind=engine)
    logger.info(f"🚀 Record transfer API started ({get_settings().app_env})")
    yield


app = FastAPI(
    title="Record Transfer",
    description="Batched import and background export of business records",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TransferError)
async def transfer_error_handler(request: Request, exc: TransferError):
    """Map domain errors that escape an endpoint to HTTP responses."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES if isinstance(exc, error_type)), 500
    )
    if status_code >= 500:
        logger.error(f"💥 {request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


# Include routers
app.include_router(imports_router)
app.include_router(exports_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
