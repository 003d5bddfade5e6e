"""
Alumni Portal - Main Application

FastAPI backend with:
- MongoDB for all portal documents
- Session request workflow, eligibility and derived session status
- Best-effort notification fan-out and email
- JWT bearer authentication (tokens issued by the auth service)

Run: uvicorn alumni_portal.main:app --reload
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from alumni_portal.api.routes import api_router
from alumni_portal.core.config import get_settings
from alumni_portal.core.errors import register_exception_handlers
from alumni_portal.core.log_config import configure_logging
from alumni_portal.db.mongodb import init_mongo_indexes, test_mongo_connection

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Alumni Portal",
    description="""
    Alumni/student engagement platform backend.

    ## Features
    - **Session requests**: alumni, faculty and admins propose mentoring sessions
    - **Approval workflow**: admins approve (scheduling the session) or reject
    - **Eligibility**: sessions target cohort years and departments
    - **Attendance**: students respond and leave feedback after the session
    - **Notifications**: in-app notifications for every workflow step
    """,
    version="1.0.0",
    debug=settings.debug,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include API routes
app.include_router(api_router, prefix="/api")


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize MongoDB indexes on startup."""
    try:
        init_mongo_indexes()
    except Exception as e:
        logger.warning("MongoDB index initialization failed: %s", e)


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "mongodb": "connected" if test_mongo_connection() else "disconnected"
    }
