# workproof/jobs.py
"""Job lifecycle.

    OPEN -> ACCEPTED -> [IN_PROGRESS] -> COMPLETED -> PAID
    any of OPEN, ACCEPTED, IN_PROGRESS, COMPLETED -> CANCELLED

PAID is only reached through payment confirmation (``mark_job_paid``), never
through a user action. Every write is conditional on the status that was
read, so two racing transitions cannot both succeed.
"""
import logging
import uuid
from typing import Dict, FrozenSet, List, NamedTuple, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .db import jobs, utc_now
from .errors import Conflict, Forbidden, InvalidTransition, NotFound
from .models import Caller, Job, JobAction, JobIn, JobStatus, Role

log = logging.getLogger("uvicorn.error")

TERMINAL: FrozenSet[JobStatus] = frozenset({JobStatus.PAID, JobStatus.CANCELLED})


class Rule(NamedTuple):
    sources: FrozenSet[JobStatus]
    target: JobStatus


RULES: Dict[JobAction, Rule] = {
    JobAction.ACCEPT: Rule(frozenset({JobStatus.OPEN}), JobStatus.ACCEPTED),
    JobAction.START: Rule(frozenset({JobStatus.ACCEPTED}), JobStatus.IN_PROGRESS),
    JobAction.COMPLETE: Rule(
        frozenset({JobStatus.ACCEPTED, JobStatus.IN_PROGRESS}), JobStatus.COMPLETED
    ),
    JobAction.CANCEL: Rule(
        frozenset(set(JobStatus) - TERMINAL), JobStatus.CANCELLED
    ),
}


# ──────────────────────────────────────────────────────────────────────────────
# Capability checks
# ──────────────────────────────────────────────────────────────────────────────
def is_party(job: Job, caller: Caller) -> bool:
    return caller.id == job.client_id or (
        job.provider_id is not None and caller.id == job.provider_id
    )


def can_view(job: Job, caller: Caller) -> bool:
    if caller.role is Role.ADMIN or is_party(job, caller):
        return True
    # open jobs are the marketplace listing
    return caller.role is Role.PROVIDER and job.status is JobStatus.OPEN


def _actor_allowed(job: Job, action: JobAction, caller: Caller) -> bool:
    if action is JobAction.ACCEPT:
        return (
            caller.role is Role.PROVIDER
            and job.provider_id is None
            and caller.id != job.client_id
        )
    if action in (JobAction.START, JobAction.COMPLETE):
        return job.provider_id is not None and caller.id == job.provider_id
    return is_party(job, caller)


def plan_transition(job: Job, action: JobAction, caller: Caller) -> JobStatus:
    """Return the status ``action`` leads to, or raise without touching anything."""
    rule = RULES[action]
    if job.status not in rule.sources:
        raise InvalidTransition(job.status.value, rule.target.value, caller.role.value)
    if action is not JobAction.ACCEPT and not is_party(job, caller):
        raise Forbidden(f"not a party to job {job.id}")
    if not _actor_allowed(job, action, caller):
        raise InvalidTransition(job.status.value, rule.target.value, caller.role.value)
    return rule.target


# ──────────────────────────────────────────────────────────────────────────────
# Persistence
# ──────────────────────────────────────────────────────────────────────────────
async def fetch_job(session: AsyncSession, job_id: str) -> Job:
    row = (await session.execute(select(jobs).where(jobs.c.id == job_id))).mappings().first()
    if row is None:
        raise NotFound(f"job {job_id} not found")
    return Job.model_validate(dict(row))


async def create_job(session: AsyncSession, payload: JobIn, caller: Caller) -> Job:
    if caller.role is not Role.CLIENT:
        raise Forbidden("only clients can post jobs")
    now = utc_now()
    values = {
        "id": str(uuid.uuid4()),
        **payload.model_dump(),
        "status": JobStatus.OPEN.value,
        "client_id": caller.id,
        "provider_id": None,
        "created_at": now,
        "updated_at": now,
    }
    await session.execute(jobs.insert().values(**values))
    await session.commit()
    log.info(f"Job {values['id']} posted by client {caller.id}")
    return Job.model_validate(values)


async def get_job(session: AsyncSession, job_id: str, caller: Caller) -> Job:
    job = await fetch_job(session, job_id)
    if not can_view(job, caller):
        raise Forbidden(f"no access to job {job_id}")
    return job


async def list_jobs(
    session: AsyncSession,
    caller: Caller,
    status: Optional[JobStatus] = None,
    category: Optional[str] = None,
) -> List[Job]:
    q = select(jobs)
    if status is not None:
        q = q.where(jobs.c.status == status.value)
    if category:
        q = q.where(jobs.c.category == category)

    if caller.role is Role.PROVIDER:
        q = q.where(or_(jobs.c.status == JobStatus.OPEN.value, jobs.c.provider_id == caller.id))
    elif caller.role is Role.CLIENT:
        q = q.where(jobs.c.client_id == caller.id)

    rows = (await session.execute(q.order_by(jobs.c.created_at.desc()))).mappings().all()
    return [Job.model_validate(dict(r)) for r in rows]


async def transition_job(
    session: AsyncSession, job_id: str, action: JobAction, caller: Caller
) -> Job:
    job = await fetch_job(session, job_id)
    target = plan_transition(job, action, caller)

    now = utc_now()
    values = {"status": target.value, "updated_at": now}
    stmt = update(jobs).where(jobs.c.id == job.id, jobs.c.status == job.status.value)
    if action is JobAction.ACCEPT:
        values["provider_id"] = caller.id
        stmt = stmt.where(jobs.c.provider_id.is_(None))

    result = await session.execute(stmt.values(**values))
    if result.rowcount != 1:
        await session.rollback()
        raise Conflict(f"job {job.id} changed while moving to {target.value}; re-read and retry")
    await session.commit()

    log.info(f"Job {job.id}: {job.status.value} -> {target.value} by {caller.role.value} {caller.id}")
    return job.model_copy(
        update={
            "status": target,
            "updated_at": now,
            "provider_id": values.get("provider_id", job.provider_id),
        }
    )


async def mark_job_paid(session: AsyncSession, job_id: str) -> bool:
    """COMPLETED -> PAID on confirmed payment. Does not commit.

    Returns True if this call moved the job. A job already PAID is a no-op;
    a job in any other status is left alone and logged.
    """
    job = await fetch_job(session, job_id)
    if job.status is JobStatus.PAID:
        return False
    if job.status is not JobStatus.COMPLETED:
        log.warning(f"Payment confirmed for job {job_id} while {job.status.value}; job status left unchanged")
        return False

    result = await session.execute(
        update(jobs)
        .where(jobs.c.id == job_id, jobs.c.status == JobStatus.COMPLETED.value)
        .values(status=JobStatus.PAID.value, updated_at=utc_now())
    )
    if result.rowcount == 1:
        return True

    current = await fetch_job(session, job_id)
    if current.status is JobStatus.PAID:
        return False
    raise Conflict(f"job {job_id} changed to {current.status.value} during payment confirmation")
