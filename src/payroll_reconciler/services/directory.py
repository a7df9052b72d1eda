"""Employee role lookups used to keep owners off automated payroll."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.models import Employee

OWNER_ROLE = "owner"


@runtime_checkable
class RoleDirectory(Protocol):
    """Read-only answer to "is this employee an owner?"."""

    async def is_owner(self, employee_id: str) -> bool:
        ...


class SqlRoleDirectory:
    """Role lookups against the employee table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def is_owner(self, employee_id: str) -> bool:
        if not employee_id:
            return False
        async with self.session_factory() as session:
            role = await session.scalar(
                select(Employee.role).where(Employee.employee_id == employee_id)
            )
        return role == OWNER_ROLE


class StaticRoleDirectory:
    """Fixed set of owner ids, for tests and one-off scripts."""

    def __init__(self, owner_ids: Iterable[str] = ()):
        self.owner_ids = frozenset(owner_ids)

    async def is_owner(self, employee_id: str) -> bool:
        return employee_id in self.owner_ids


class CachedRoleDirectory:
    """Memoizes another directory for the lifetime of this object.

    Create one per request or per batch run and pass it in; nothing is
    cached across instances.
    """

    def __init__(self, inner: RoleDirectory):
        self.inner = inner
        self._cache: dict[str, bool] = {}
        self.lookups = 0

    async def is_owner(self, employee_id: str) -> bool:
        if employee_id not in self._cache:
            self.lookups += 1
            self._cache[employee_id] = await self.inner.is_owner(employee_id)
        return self._cache[employee_id]
