"""Read access to job records and assignment extraction."""

from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_reconciler.calculators.types import JobAssignment
from payroll_reconciler.models import ServiceJob

COMPLETED_STATUS = "completed"

# Statuses that will (or already did) produce payroll and so need a rate
PAYROLL_RELEVANT_STATUSES = frozenset(
    {"completed", "pending approval", "in progress", "started"}
)


def resolve_job_status(job: ServiceJob) -> str:
    """Current status, falling back to the legacy field, lower-cased."""
    if job.status:
        return job.status.lower()
    if job.status_legacy:
        return job.status_legacy.lower()
    return ""


def is_completed(job: ServiceJob) -> bool:
    return resolve_job_status(job) == COMPLETED_STATUS


def _assigned_employee_ids(job: ServiceJob) -> list[str]:
    if isinstance(job.assigned_employees, list):
        return [str(e) for e in job.assigned_employees if e]
    if isinstance(job.employee_assignments, list):
        ids = []
        for assignment in job.employee_assignments:
            if isinstance(assignment, dict) and assignment.get("uid"):
                ids.append(str(assignment["uid"]))
        return ids
    return []


def extract_assignments(job: ServiceJob) -> list[JobAssignment]:
    """One JobAssignment per employee assigned to the job."""
    duration = job.duration_minutes
    if duration is None:
        duration = job.estimated_duration_minutes

    seen: set[str] = set()
    assignments = []
    for employee_id in _assigned_employee_ids(job):
        if employee_id in seen:
            continue
        seen.add(employee_id)
        assignments.append(
            JobAssignment(
                employee_id=employee_id,
                job_id=job.job_id,
                service_date=job.service_date,
                location_id=job.location_id,
                client_id=job.client_id,
                duration_minutes=duration,
            )
        )
    return assignments


class JobRepository:
    """Job record queries; never writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, job_id: str) -> ServiceJob | None:
        return await self.session.get(ServiceJob, job_id)

    async def list_between(self, start: date, end: date) -> list[ServiceJob]:
        """Jobs with start <= service_date < end."""
        result = await self.session.execute(
            select(ServiceJob)
            .where(ServiceJob.service_date >= start, ServiceJob.service_date < end)
            .order_by(ServiceJob.service_date, ServiceJob.job_id)
        )
        return list(result.scalars().all())
