"""Print queue routes, polled by the print bridge."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException

from forno.core.rbac import CurrentUser
from forno.schemas.print_job import PrintJob
from forno.services.print_queue import get_print_queue

router = APIRouter()


@router.get("", response_model=List[PrintJob])
def pending_jobs(current_user: CurrentUser, printer: Optional[str] = None):
    return get_print_queue().pending(printer)


@router.delete("/{job_id}", status_code=204)
def clear_job(job_id: str, current_user: CurrentUser):
    if not get_print_queue().clear(job_id):
        raise HTTPException(status_code=404, detail=f"Print job {job_id} not found")
