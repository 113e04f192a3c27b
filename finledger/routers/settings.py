"""
Settings Router
Budget policy and background job status
"""
from typing import Dict, Optional

from fastapi import APIRouter, Depends

from finledger.core.dependencies import get_dashboard, get_jobs
from finledger.models.budget import BudgetUpdate
from finledger.utils.dashboard import Dashboard
from finledger.utils.scheduler import BackgroundJobs

router = APIRouter()


@router.get("/budget")
async def get_budget(dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    return {
        "policy": dashboard.budget.model_dump(),
        "status": dashboard.budget_status().to_dict(),
    }


@router.put("/budget")
async def update_budget(update: BudgetUpdate, dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    """
    Switch auto mode and/or set a manual limit.
    While auto mode is on the limit is derived from this month's income.
    """
    policy = dashboard.set_budget(monthly_limit=update.monthly_limit, auto_mode=update.auto_mode)
    return {
        "policy": policy.model_dump(),
        "status": dashboard.budget_status().to_dict(),
    }


@router.get("/scheduler")
async def scheduler_status(jobs: Optional[BackgroundJobs] = Depends(get_jobs)) -> Dict:
    if jobs is None:
        return {"running": False, "jobs": []}
    return jobs.status()
