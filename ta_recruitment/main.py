"""
TA Recruitment - Main Application

FastAPI backend with:
- MongoDB for every entity (replica set, transactions)
- JWT-protected lecturer and admin endpoints
- SMTP notifications sent as background tasks

Run: uvicorn ta_recruitment.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ta_recruitment.api.routes import api_router
from ta_recruitment.core.config import get_settings
from ta_recruitment.core.errors import WorkflowError
from ta_recruitment.db.mongodb import init_mongo_indexes, test_mongo_connection
from ta_recruitment.schemas.schemas import ErrorResponse

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="TA Recruitment System",
    description="""
    Teaching Assistant recruitment for a university department.

    ## Features
    - **TA**: browse advertised positions, apply, follow application status
    - **Lecturers**: accept or reject applications, edit module TA requirements
    - **Admins**: delete applications with full counter reversal

    ## Consistency
    Applying, deciding and deleting each run in one MongoDB transaction across
    modules, applications and the hour ledgers.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api")


# ============================================================
# ERROR HANDLERS - every error body is {"error": ...}
# ============================================================

@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    body = ErrorResponse(error=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body, exclude_none=True))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": f"Database error: {exc}"})


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize MongoDB indexes on startup."""
    try:
        init_mongo_indexes()
    except PyMongoError as e:
        logger.warning("MongoDB index initialization failed: %s", e)


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "mongodb": "connected" if test_mongo_connection() else "disconnected"
    }
