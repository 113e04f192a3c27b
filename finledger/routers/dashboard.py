from typing import Dict, List

from fastapi import APIRouter, Depends

from finledger.core.dependencies import get_dashboard
from finledger.utils.aggregation import Granularity
from finledger.utils.dashboard import Dashboard

router = APIRouter()


@router.get("/")
async def overview(dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    state = dashboard.state
    return {
        "sequence": state.sequence,
        "source": state.source,
        "refreshed_at": state.refreshed_at.isoformat() if state.refreshed_at else None,
        "totals": state.totals.to_dict(),
        "budget": dashboard.budget_status().to_dict(),
        "transaction_count": len(state.transactions),
        "savings_count": len(state.savings),
    }


@router.post("/refresh")
async def refresh(dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    result = await dashboard.refresh()
    return {"sequence": result.sequence, "applied": result.applied, "source": result.state.source}


@router.get("/summaries")
async def summaries(granularity: Granularity = Granularity.MONTH, dashboard: Dashboard = Depends(get_dashboard)) -> List[Dict]:
    return dashboard.summaries(granularity)


@router.get("/analytics")
async def analytics(dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    """XP, level, badges, highlights and leaderboard, recomputed on every call."""
    return await dashboard.analytics_report()
