import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from supportchat.api.routes_chat import router as chat_router
from supportchat.api.routes_chats import router as chats_router
from supportchat.config import get_config
from supportchat.db.mongo import MongoStore
from supportchat.errors import BadRequest

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    app.state.store = None
    if config.db.mongodb_uri:
        try:
            app.state.store = await MongoStore.connect(config.db.mongodb_uri, config.db.mongodb_db)
        except Exception as e:
            # Keep serving; chats then live only in client-local storage
            logger.error("Mongo connection failed: %s", e)
    yield
    if app.state.store is not None:
        app.state.store.close()


def create_app() -> FastAPI:
    config = get_config()
    app = FastAPI(title="Supportchat Relay", version="1.0.0", lifespan=lifespan)

    origins = config.server.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(chat_router)
    app.include_router(chats_router)

    @app.exception_handler(BadRequest)
    async def bad_request_handler(request: Request, exc: BadRequest):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.get("/health")
    async def health_check():
        return {"ok": True}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=get_config().server.host, port=get_config().server.port)
