# workproof/photos.py
"""Proof-of-work photo records. The image itself lives in the blob store."""
import logging
import uuid
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .db import photos, utc_now
from .errors import Forbidden, InvalidState
from .jobs import fetch_job, is_party
from .models import Caller, JobStatus, Photo, PhotoIn, Role

log = logging.getLogger("uvicorn.error")

UPLOADABLE = frozenset({JobStatus.ACCEPTED, JobStatus.IN_PROGRESS, JobStatus.COMPLETED})


async def add_photo(session: AsyncSession, job_id: str, payload: PhotoIn, caller: Caller) -> Photo:
    job = await fetch_job(session, job_id)
    if job.provider_id is None or caller.id != job.provider_id:
        raise Forbidden(f"only the assigned provider can add photos to job {job_id}")
    if job.status not in UPLOADABLE:
        raise InvalidState(f"job {job_id} is {job.status.value}; photos are not accepted")

    now = utc_now()
    values = {
        "id": str(uuid.uuid4()),
        "job_id": job.id,
        **payload.model_dump(exclude={"taken_at"}),
        "type": payload.type.value,
        "taken_at": payload.taken_at or now,
        "created_at": now,
    }
    await session.execute(photos.insert().values(**values))
    await session.commit()
    log.info(f"{payload.type.value} photo {values['id']} added to job {job.id}")
    return Photo.model_validate(values)


async def list_photos(session: AsyncSession, job_id: str, caller: Caller) -> List[Photo]:
    job = await fetch_job(session, job_id)
    if caller.role is not Role.ADMIN and not is_party(job, caller):
        raise Forbidden(f"no access to job {job_id}")
    rows = (
        await session.execute(
            select(photos).where(photos.c.job_id == job_id).order_by(photos.c.taken_at)
        )
    ).mappings().all()
    return [Photo.model_validate(dict(r)) for r in rows]
