# workproof/routers/health.py
from fastapi import APIRouter, Request
from sqlalchemy import text

from ..errors import WorkproofError

router = APIRouter(prefix="/health", tags=["health"])


class DatabaseDown(WorkproofError):
    kind = "database_unavailable"
    status_code = 503


@router.get("")
def health():
    return {"ok": True}


@router.get("/db")
async def health_db(request: Request):
    try:
        async with request.app.state.engine.connect() as conn:
            result = await conn.execute(text("select 1"))
            return {"ok": True, "db": result.scalar_one()}
    except Exception as e:
        raise DatabaseDown(f"DB check failed: {e}") from e
