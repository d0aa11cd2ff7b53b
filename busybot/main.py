from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from busybot.config import settings
from busybot.database import init_db
from busybot.logging_config import get_logger, setup_logging
from busybot.routers import train, webhook

setup_logging(settings.log_level)

app = FastAPI(
    title="BusyBot API",
    description="Auto-replies in your own style while you are busy",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(train.router)

logger = get_logger("main")


@app.on_event("startup")
def create_tables():
    if settings.create_tables:
        init_db()
        logger.info("Database tables ensured")


@app.get("/health")
def health():
    return {"status": "ok"}
