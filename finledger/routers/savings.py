"""
Savings Router
One-time savings and recurring deposits: create, edit, pay in, close, delete
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel

from finledger.core.dependencies import get_dashboard, unwrap
from finledger.models.savings import SavingCreate
from finledger.utils.dashboard import Dashboard

router = APIRouter()


class DepositCreate(BaseModel):
    amount: Optional[float] = None  # defaults to the plan's monthly amount
    date: Optional[datetime] = None


def _mutation_response(result) -> Dict:
    return {"record": result.record, "synced": result.synced}


@router.get("/")
async def list_savings(dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    return {"items": dashboard.savings_view(), "source": dashboard.state.source}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_saving(payload: SavingCreate, dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    return _mutation_response(unwrap(await dashboard.create_saving(payload)))


@router.put("/{saving_id}")
async def edit_saving(
    saving_id: str,
    changes: Dict[str, Any] = Body(...),
    dashboard: Dashboard = Depends(get_dashboard),
) -> Dict:
    return _mutation_response(unwrap(await dashboard.edit_saving(saving_id, changes)))


@router.delete("/{saving_id}")
async def delete_saving(saving_id: str, confirm: bool = True, dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    outcome = await dashboard.delete_saving(saving_id, confirmed=confirm)
    if outcome.declined:
        return {"performed": False}
    result = unwrap(outcome)
    return {"performed": True, "synced": result.synced}


@router.post("/{saving_id}/add-month")
async def add_monthly_deposit(
    saving_id: str,
    deposit: Optional[DepositCreate] = Body(default=None),
    dashboard: Dashboard = Depends(get_dashboard),
) -> Dict:
    deposit = deposit or DepositCreate()
    outcome = await dashboard.add_monthly_deposit(saving_id, deposit.amount, deposit.date)
    return _mutation_response(unwrap(outcome))


@router.post("/{saving_id}/close")
async def close_saving(saving_id: str, confirm: bool = True, dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    outcome = await dashboard.close_saving(saving_id, confirmed=confirm)
    if outcome.declined:
        return {"performed": False}
    return {"performed": True, **_mutation_response(unwrap(outcome))}
