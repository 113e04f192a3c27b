"""
Notifications Router
Drains the outbound notification channel for a presentation client
"""
from typing import Dict

from fastapi import APIRouter, Depends

from finledger.core.dependencies import get_dashboard
from finledger.utils.dashboard import Dashboard

router = APIRouter()


@router.get("/")
async def pending_notifications(dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    notifications = [n.to_dict() for n in dashboard.notifications.drain()]

    severity_counts = {
        "error": len([n for n in notifications if n["severity"] == "error"]),
        "warning": len([n for n in notifications if n["severity"] == "warning"]),
        "info": len([n for n in notifications if n["severity"] == "info"]),
        "success": len([n for n in notifications if n["severity"] == "success"]),
    }

    return {
        "notifications": notifications,
        "count": len(notifications),
        "severity_counts": severity_counts,
    }
