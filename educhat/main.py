import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from educhat.config import Config
from educhat.database.connection import close_mongo_connection, connect_to_mongo, get_database
from educhat.errors import ChatError, ValidationFailedError
from educhat.logging_config import setup_logging
from educhat.repositories.conversation_repository import ConversationRepository
from educhat.repositories.message_repository import MessageRepository
from educhat.routers.chat import router as messages_router
from educhat.routers.chat import ws_router
from educhat.routers.conversations import router as conversations_router
from educhat.routers.uploads import router as uploads_router
from educhat.utils.realtime_bus import create_bus
from educhat.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    db = await connect_to_mongo()
    await ConversationRepository(db).ensure_indexes()
    await MessageRepository(db).ensure_indexes()
    app.state.bus = create_bus(Config.REDIS_URL)
    try:
        yield
    finally:
        app.state.connections.clear()
        await app.state.bus.close()
        await close_mongo_connection()


def _field_names(errors) -> list[str]:
    names = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        names.append(".".join(loc) or "body")
    return names


def create_app() -> FastAPI:
    setup_logging(Config.LOG_LEVEL, Config.LOG_FILE)

    app = FastAPI(title="EduChat", lifespan=lifespan)
    app.state.connections = ConnectionManager()

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        content = {"success": False, "message": exc.message}
        if isinstance(exc, ValidationFailedError):
            content["errors"] = exc.fields
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Validation errors", "errors": _field_names(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})

    app.include_router(conversations_router)
    app.include_router(messages_router)
    app.include_router(uploads_router)
    app.include_router(ws_router)
    # attachment urls returned by the upload endpoint resolve here
    app.mount(Config.UPLOAD_BASE_URL, StaticFiles(directory=Config.UPLOAD_DIR, check_dir=False), name="uploads")

    @app.get("/")
    async def root():

        db = get_database()
        collections = await db.list_collection_names()
        return {"message": "Connected to MongoDB!", "collections": collections}

    return app


app = create_app()
