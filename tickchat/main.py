import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager

from tickchat.config import settings
from tickchat.database import create_tables
from tickchat.delivery import DeliveryRouter
from tickchat.errors import register_error_handlers
from tickchat.presence import PresenceRegistry
from tickchat.storage import FileStorage
from tickchat.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()

    registry = PresenceRegistry()
    manager = ConnectionManager(registry)
    app.state.connection_manager = manager
    app.state.delivery_router = DeliveryRouter(manager)
    logger.info("%s %s started", settings.APP_NAME, settings.VERSION)

    yield

    await manager.close_all()
    logger.info("%s stopped", settings.APP_NAME)


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="TickChat direct messaging API",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    storage = FileStorage()
    storage.ensure_dirs()
    app.state.file_storage = storage
    app.mount("/images", StaticFiles(directory=storage.image_dir), name="images")
    app.mount("/uploads", StaticFiles(directory=storage.upload_dir), name="uploads")

    from tickchat.api.v1 import auth, messages, websocket

    app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
    app.include_router(messages.router, prefix="/api/v1/messages", tags=["messages"])
    app.include_router(websocket.router, prefix="/api/v1/ws", tags=["websocket"])

    @app.get("/")
    async def root():
        return {"message": "TickChat API", "version": settings.VERSION}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
