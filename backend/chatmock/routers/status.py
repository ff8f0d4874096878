import time
from datetime import datetime, timezone

from fastapi import APIRouter

from ..config import APP_NAME, APP_VERSION
from ..schemas.chat import HealthStatus, ServiceInfo
from ..services.engine import DEFAULT_CHAT_PATH

router = APIRouter(tags=["status"])

STARTED_AT = time.monotonic()

FEATURES = [
    "Server-Sent Events streaming",
    "File upload support",
    "CORS enabled",
    "Markdown responses",
    "Mock AI responses",
]


@router.get("/health", response_model=HealthStatus)
async def health() -> HealthStatus:
    return HealthStatus(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=round(time.monotonic() - STARTED_AT, 3),
    )


@router.get("/info", response_model=ServiceInfo)
async def info() -> ServiceInfo:
    return ServiceInfo(
        name=APP_NAME,
        version=APP_VERSION,
        features=FEATURES,
        endpoints={
            DEFAULT_CHAT_PATH: "Main chat endpoint (POST)",
            "/api/health": "Health check (GET)",
            "/api/info": "Server information (GET)",
        },
    )
