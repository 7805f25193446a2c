"""Main FastAPI application"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import __version__
from app.api import chat, config as config_api, conversations, files
from app.models.config import AppConfig
from app.services.database import get_connection_manager
from app.utils.config_loader import get_config
from app.utils.logger import setup_logger

# Initialize configuration and logging
config = get_config()
app_config = AppConfig(**config.get_section('app'))
logger = setup_logger(
    log_level=app_config.log_level,
    log_file=app_config.log_file
)

app = FastAPI(
    title="Chat Clone",
    description="Multi-turn chat with persisted history, file attachments and provider failover",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    logger.info("Chat Clone application starting...")
    logger.info(f"Configuration loaded from: {config.config_path}")
    logger.info(f"Default model: {config.get('llm.default_model')}")
    logger.info(f"Fallback order: {config.get('llm.fallback_order')}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Chat Clone application shutting down...")
    await get_connection_manager().close()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "Chat Clone",
        "version": __version__,
        "status": "running"
    }


app.include_router(config_api.router, prefix="/api", tags=["config"])
app.include_router(conversations.router, prefix="/api", tags=["conversations"])
app.include_router(chat.router, prefix="/api", tags=["chat"])
app.include_router(files.router, prefix="/api", tags=["files"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=app_config.host,
        port=app_config.port,
        reload=True
    )
