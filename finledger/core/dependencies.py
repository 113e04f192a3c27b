from typing import Optional

from fastapi import HTTPException, Request, status

from finledger.core.config import Settings
from finledger.core.errors import InvalidChangeError, NotRecurringError, PlanClosedError, RecordNotFoundError
from finledger.utils.dashboard import Dashboard, Outcome
from finledger.utils.scheduler import BackgroundJobs


def get_dashboard(request: Request) -> Dashboard:
    return request.app.state.dashboard


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_jobs(request: Request) -> Optional[BackgroundJobs]:
    return getattr(request.app.state, "jobs", None)


def unwrap(outcome: Outcome):
    """Map a rejected Outcome onto an HTTP error, otherwise return its value."""
    error = outcome.error
    if error is None:
        return outcome.value
    if isinstance(error, RecordNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, PlanClosedError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, (NotRecurringError, InvalidChangeError)):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error))
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
