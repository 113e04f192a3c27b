from typing import Dict

from fastapi import APIRouter, Depends, status

from finledger.core.clock import now_in
from finledger.core.dependencies import get_dashboard, unwrap
from finledger.models.note import NoteCreate
from finledger.utils.dashboard import Dashboard
from finledger.utils.notifications import due_reminders

router = APIRouter()


@router.get("/")
async def list_notes(dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    notes = await dashboard.fetch_notes()
    return {"items": [n.model_dump(by_alias=True, mode="json") for n in notes]}


@router.get("/reminders")
async def todays_reminders(dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    today = now_in(dashboard.zone).date()
    due = due_reminders(dashboard.notes, today)
    return {"date": today.isoformat(), "items": [n.model_dump(by_alias=True, mode="json") for n in due]}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_note(payload: NoteCreate, dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    result = unwrap(await dashboard.create_note(payload))
    return {"record": result.record, "synced": result.synced}


@router.put("/{note_id}")
async def update_note(note_id: str, payload: NoteCreate, dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    result = unwrap(await dashboard.update_note(note_id, payload))
    return {"record": result.record, "synced": result.synced}


@router.delete("/{note_id}")
async def delete_note(note_id: str, confirm: bool = True, dashboard: Dashboard = Depends(get_dashboard)) -> Dict:
    outcome = await dashboard.delete_note(note_id, confirmed=confirm)
    if outcome.declined:
        return {"performed": False}
    return {"performed": True, "synced": unwrap(outcome).synced}
