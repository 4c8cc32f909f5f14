"""Main FastAPI application with server/client mode switching."""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db, close_db
from .routers import (
    devices_router,
    notifications_router,
    diagnostics_router,
    enrollments_router,
    reminders_router,
)
from .services.push_sender import PushConfig, push_sender_service
from .services.sms_sender import SmsConfig, sms_sender_service
from .services.scheduler import scheduler_service
from .services.mirror_client import mirror_client

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info(f"Starting LectureLet reminders in {settings.mode.upper()} mode")

    if settings.mode == "server":
        await init_db()
        logger.info("Database initialized")

        push_sender_service.configure(PushConfig.from_settings())
        sms_sender_service.configure(SmsConfig.from_settings())

        # Server mode: periodic reminder scan and token cleanup
        scheduler_service.start()

    elif settings.mode == "client":
        # Client mode: keep this device's local reminders in sync
        asyncio.create_task(mirror_client.run())
        logger.info("Mirror client started")

    yield

    # Shutdown
    if settings.mode == "server":
        scheduler_service.stop()
        await close_db()
    elif settings.mode == "client":
        mirror_client.stop()

    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="LectureLet Reminders",
        description="Class reminders over push, in-app and text-message channels",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(devices_router)
    app.include_router(notifications_router)
    app.include_router(diagnostics_router)
    app.include_router(enrollments_router)
    app.include_router(reminders_router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "mode": settings.mode,
            "scheduler_running": scheduler_service.running,
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
