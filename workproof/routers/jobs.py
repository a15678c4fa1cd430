# workproof/routers/jobs.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .. import jobs
from ..deps import get_caller, get_session
from ..errors import ValidationError
from ..models import Caller, Job, JobIn, JobStatus, JobTransitionIn

router = APIRouter(prefix="/jobs", tags=["jobs"])


def parse_status(raw: Optional[str], enum):
    if not raw or raw.upper() == "ALL":
        return None
    try:
        return enum(raw.upper())
    except ValueError:
        raise ValidationError(f"unknown status {raw!r}")


@router.get("", response_model=List[Job])
async def list_jobs(
    status: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    return await jobs.list_jobs(db, caller, status=parse_status(status, JobStatus), category=category)


@router.post("", response_model=Job, status_code=201)
async def create_job(
    payload: JobIn,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    return await jobs.create_job(db, payload, caller)


@router.get("/{job_id}", response_model=Job)
async def get_job(
    job_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    return await jobs.get_job(db, job_id, caller)


@router.post("/{job_id}/transition", response_model=Job)
async def transition_job(
    job_id: str,
    payload: JobTransitionIn,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    return await jobs.transition_job(db, job_id, payload.action, caller)
