from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from .config import APP_NAME, APP_VERSION, get_settings
from .routers import chat, status
import logging
import sys
import os

# Configure root logging if not already configured by Uvicorn
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stdout)

logging.getLogger("chatmock").setLevel(logging.INFO)
logging.getLogger("uvicorn.access").setLevel(logging.INFO)

logger = logging.getLogger(__name__)

settings = get_settings()

FRONTEND_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8080",
    "http://127.0.0.1:8080",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    base = f"http://localhost:{settings.backend_port}"
    logger.info("%s %s running on port %s", APP_NAME, APP_VERSION, settings.backend_port)
    logger.info("Chat endpoint: %s/api/chat", base)
    logger.info("Health check: %s/api/health", base)
    logger.info("Server info: %s/api/info", base)
    yield
    logger.info("Shutting down server...")
    listener = app.dependency_overrides.get(chat.get_listener, chat.get_listener)()
    store = listener.store
    if store is not None:
        await store.aclose()


app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)

if settings.allow_all_origins:
    logger.warning("CORS: Allowing ALL origins (BACKEND_ALLOW_ALL_ORIGINS=1) - dev only!")
    origins = ["*"]
else:
    origins = FRONTEND_ORIGINS

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router, prefix="/api")
app.include_router(status.router, prefix="/api")

# Serve the demo page last so /api routes take precedence
if settings.static_dir:
    static_dir = os.path.normpath(settings.static_dir)
    if os.path.isdir(static_dir):
        app.mount('/', StaticFiles(directory=static_dir, html=True), name='static')
        logger.info("Mounted static files from %s at /", static_dir)
    else:
        logger.warning("STATIC_DIR %s is not a directory; skipping static mount", static_dir)
