import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from volunteer_chat.core.config import settings
from volunteer_chat.core.database import engine
from volunteer_chat.api.v1.api import api_router
from volunteer_chat.websockets.chat_ws import router as chat_ws_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s %s starting, chat messages capped at %d characters",
                settings.PROJECT_NAME, settings.VERSION, settings.CHAT_MESSAGE_MAX_LENGTH)
    yield
    await engine.dispose()
    logger.info("%s stopped", settings.PROJECT_NAME)


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Opportunity chat and application routes
app.include_router(api_router, prefix=settings.API_V1_STR)

# Same routes unprefixed, for clients that call /opportunities/... directly
app.include_router(api_router, prefix="")

# Live group chat per opportunity
app.include_router(chat_ws_router)
