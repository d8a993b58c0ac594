import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from snapshoot.core.config import get_settings
from snapshoot.core.logging import setup_logging
from snapshoot.database.connection import close_mongo_connection, connect_to_mongo
from snapshoot.exceptions.handlers import register_exception_handlers
from snapshoot.repositories.message_repository import MessageRepository
from snapshoot.routers.chat import router as chat_router
from snapshoot.routers.conversations import router as conversations_router
from snapshoot.routers.presence import router as presence_router
from snapshoot.utils.presence_registry import PresenceRegistry


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    db = await connect_to_mongo()
    await MessageRepository(db).ensure_indexes()
    logger.info("Snapshoot API started", extra={"env": get_settings().ENV})
    try:
        yield
    finally:
        await close_mongo_connection()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings)

    app = FastAPI(title="Snapshoot messaging API", lifespan=lifespan)
    # presence lives exactly as long as this process
    app.state.presence = PresenceRegistry()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(chat_router)
    app.include_router(conversations_router)
    app.include_router(presence_router)

    @app.get("/")
    async def root():
        return {"message": "Welcome to the Snapshoot API", "online_users": len(app.state.presence)}

    return app


app = create_app()
