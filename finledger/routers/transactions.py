from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from finledger.core.config import Settings
from finledger.core.dependencies import get_app_settings, get_dashboard, unwrap
from finledger.models.transaction import TransactionCreate, TransactionKind
from finledger.utils.dashboard import Dashboard

router = APIRouter()


@router.get("/")
async def list_transactions(
    q: Optional[str] = None,
    date_from: Optional[datetime] = Query(default=None, alias="from"),
    date_to: Optional[datetime] = Query(default=None, alias="to"),
    kind: Optional[TransactionKind] = Query(default=None, alias="type"),
    page: int = Query(default=1, ge=1),
    dashboard: Dashboard = Depends(get_dashboard),
    settings: Settings = Depends(get_app_settings),
) -> Dict:
    """
    Search by title or notes, filter by date range and type, one page at a time.
    Totals cover every match, not just the current page.
    """
    engine = dashboard.aggregation
    matches = engine.filter_transactions(dashboard.state.transactions, q, date_from, date_to, kind)
    result = engine.paginate(matches, page, settings.PAGE_SIZE)

    return {
        "items": [tx.model_dump(by_alias=True, mode="json") for tx in result.items],
        "page": result.page,
        "total_pages": result.total_pages,
        "total": result.total,
        "totals": engine.totals(matches).to_dict(),
        "source": dashboard.state.source,
    }


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_transaction(payload: TransactionCreate, dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    result = unwrap(await dashboard.submit_transaction(payload))
    return {"record": result.record, "synced": result.synced}
