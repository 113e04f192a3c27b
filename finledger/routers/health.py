"""
Health Check Router
Liveness plus remote store reachability
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from finledger.core.config import Settings
from finledger.core.dependencies import get_app_settings, get_dashboard
from finledger.utils.dashboard import Dashboard

router = APIRouter()


@router.get("/health")
async def health_check(settings: Settings = Depends(get_app_settings)):
    """
    Health check endpoint.
    Returns API status.
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/status")
async def remote_status(dashboard: Dashboard = Depends(get_dashboard)):
    """
    Check the remote collection service. A degraded status means reads are
    being served from the local fallback cache.
    """
    error = await dashboard.store.probe()
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "remote": {**dashboard.store.describe_remote(), "connected": error is None, "error": error},
        "last_refresh": {
            "sequence": dashboard.state.sequence,
            "source": dashboard.state.source,
        },
        "overall_status": "healthy" if error is None else "degraded",
    }
