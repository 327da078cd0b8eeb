from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional
import logging
import os

import httpx

from examportal.config import Settings, settings as default_settings
from examportal.context import build_portal

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """Build the app; `transport` lets tests stand in for the backend."""
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Create downloads directory if it doesn't exist
    os.makedirs(settings.download_dir, exist_ok=True)

    # Initialize FastAPI app
    app = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        debug=settings.debug
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.portal = build_portal(settings, transport=transport)

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"🚀 {settings.app_name} is starting...")
        logger.info(f"📚 Storage: {settings.database_url}")
        logger.info(f"🌐 Backend: {settings.backend_url}")

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.portal.close()
        logger.info(f"👋 {settings.app_name} stopped")

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.api_version,
            "status": "running"
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    # Import and include routers
    from examportal.routes import admin, auth, dashboards, exam_management, exams, tasks

    app.include_router(auth.router, prefix="/api", tags=["Auth"])
    app.include_router(exams.router, prefix="/api/exams", tags=["Exams"])
    app.include_router(exam_management.router, prefix="/api/admin/exams", tags=["Exam Management"])
    app.include_router(tasks.router, prefix="/api/tasks", tags=["Tasks"])
    app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
    app.include_router(dashboards.router, prefix="/dashboard", tags=["Dashboards"])

    return app


app = create_app()
