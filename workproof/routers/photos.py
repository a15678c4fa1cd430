# workproof/routers/photos.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .. import photos
from ..deps import get_caller, get_session
from ..models import Caller, Photo, PhotoIn

router = APIRouter(prefix="/jobs", tags=["photos"])


@router.get("/{job_id}/photos", response_model=List[Photo])
async def list_photos(job_id: str, caller: Caller = Depends(get_caller), db: AsyncSession = Depends(get_session)):
    return await photos.list_photos(db, job_id, caller)


@router.post("/{job_id}/photos", response_model=Photo, status_code=201)
async def add_photo(
    job_id: str,
    payload: PhotoIn,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    return await photos.add_photo(db, job_id, payload, caller)
