"""Configuration and health check API endpoints"""

from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from typing import Dict, Any

from app.models.config import FilesConfig, LLMConfig
from app.services.ai_models import AI_MODELS
from app.services.database import ConnectionManager, get_connection_manager
from app.services.llm_service import configured_providers
from app.utils.config_loader import get_config
from app import __version__

router = APIRouter()


@router.get("/health")
async def health_check(
    manager: ConnectionManager = Depends(get_connection_manager),
) -> Dict[str, Any]:
    """Health check endpoint"""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "message": "App is running successfully",
        "database": manager.state.value,
        "version": __version__
    }


@router.get("/config")
async def get_configuration() -> Dict[str, Any]:
    """Get current configuration (non-sensitive parts)"""
    config = get_config()
    llm = LLMConfig(**config.get_section('llm'))
    files = FilesConfig(**config.get_section('files'))

    return {
        "llm": {
            "default_model": llm.default_model,
            "fallback_order": llm.fallback_order,
            "temperature": llm.temperature
        },
        "files": {
            "max_file_size_mb": files.max_file_size_mb
        },
        "configured_providers": configured_providers()
    }


@router.get("/models")
async def list_models() -> Dict[str, Any]:
    """Models a conversation can be created with"""
    return {
        "models": [
            {"id": model_id, **spec.model_dump()}
            for model_id, spec in AI_MODELS.items()
        ]
    }
