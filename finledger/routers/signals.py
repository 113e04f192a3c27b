"""
Signals Router
Inbound invalidation events. No payload; each accepted signal triggers its own full refresh.
"""
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, status

from finledger.core.dependencies import get_dashboard
from finledger.utils.dashboard import Dashboard
from finledger.utils.notifications import SAVINGS_EXPIRED, TRANSACTION_CREATED

router = APIRouter()

KNOWN_SIGNALS = {TRANSACTION_CREATED, SAVINGS_EXPIRED}


@router.post("/{event}", status_code=status.HTTP_202_ACCEPTED)
async def receive_signal(event: str, dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    if event not in KNOWN_SIGNALS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown signal: {event}")
    dashboard.handle_signal(event)
    return {"accepted": event}
