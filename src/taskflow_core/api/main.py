"""Taskflow Core FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskflow_core import __version__
from taskflow_core.config import get_settings
from taskflow_core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ReferentialIntegrityError,
    TaskflowError,
    ValidationError,
)
from taskflow_core.seed import seed_demo_data
from taskflow_core.store import init_schema

from ..database import SessionLocal, engine
from .routers import auth, chat, departments, profile, projects, reports, tasks, users

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("taskflow-core")

ERROR_STATUS = {
    ValidationError: 400,
    AuthenticationError: 401,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    ReferentialIntegrityError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    init_schema(engine)
    if settings.seed_demo_data:
        db = SessionLocal()
        try:
            seed_demo_data(db)
        finally:
            db.close()
    logger.info(f"Taskflow Core API {__version__} started")
    yield


# Create FastAPI app
app = FastAPI(
    title="Taskflow Core API",
    description="Departments, projects, tasks, closing reports and chat",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TaskflowError)
def handle_taskflow_error(request: Request, exc: TaskflowError) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    status_code = ERROR_STATUS.get(type(exc), 400)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


app.include_router(auth.router, prefix="/api/v1/auth")
app.include_router(departments.router, prefix="/api/v1/departments")
app.include_router(users.router, prefix="/api/v1/users")
app.include_router(profile.router, prefix="/api/v1/profile")
app.include_router(projects.router, prefix="/api/v1/projects")
app.include_router(tasks.router, prefix="/api/v1/tasks")
app.include_router(reports.router, prefix="/api/v1/reports")
app.include_router(chat.router, prefix="/api/v1/chat")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "Taskflow Core API",
        "version": __version__,
        "actor_header": "X-Actor-Login",
        "docs": "/docs",
    }


@app.get("/api/v1/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
