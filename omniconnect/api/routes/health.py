"""
Health check endpoints.
"""

import time
from typing import Any

from fastapi import APIRouter, Request

from omniconnect.api.dependencies.services import get_hub
from omniconnect.core.config.settings import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Application status with realtime hub statistics."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": {
            "environment": settings.environment,
            "version": settings.version,
            "log_level": settings.log_level,
        },
        "realtime": get_hub(request).stats(),
    }
