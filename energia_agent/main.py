from fastapi import FastAPI

from energia_agent.config import settings
from energia_agent.database import init_db
from energia_agent.dependencies import drain_turns
from energia_agent.logging_config import get_logger, setup_logging
from energia_agent.routers import admin, webhook

setup_logging(settings.log_level, json_output=not settings.debug)

logger = get_logger("main")

app = FastAPI(
    title="Energia Agent API",
    description="WhatsApp sales agent for the Energia A energy subscription",
    version="0.1.0",
)

app.include_router(webhook.router)
app.include_router(admin.router)


@app.on_event("startup")
async def startup() -> None:
    init_db()
    logger.info("Database ready", extra={"context": {"instance": settings.evolution_instance_name}})


@app.on_event("shutdown")
async def shutdown() -> None:
    await drain_turns()


@app.get("/")
async def root():
    return {"status": "ok", "message": "Servidor do Bot (Evolution API) está no ar! ☀️"}
