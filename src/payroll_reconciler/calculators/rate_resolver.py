"""Pay rate resolution with scope precedence and effective dating."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_reconciler.calculators.types import RateSnapshot, RateType
from payroll_reconciler.models import EmployeeRate

logger = logging.getLogger(__name__)

# Minimum expected rates to catch data issues (e.g., accidental $1 entries)
MIN_EXPECTED_RATES: dict[RateType, Decimal] = {
    RateType.PER_VISIT: Decimal("5"),
    RateType.HOURLY: Decimal("5"),
    RateType.MONTHLY: Decimal("100"),
}

# Legacy amount keys, in lookup order
LEGACY_AMOUNT_KEYS = ("amount", "rate", "perVisitRate", "hourlyRate", "monthlyRate")

_RATE_TYPE_VALUES = {t.value for t in RateType}

# Rate owner columns, in lookup order
EMPLOYEE_ID_COLUMNS = (EmployeeRate.employee_id, EmployeeRate.employee_profile_id)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def normalize_rate_record(record: EmployeeRate | Mapping[str, Any]) -> RateSnapshot:
    """Reduce any historical rate shape to the canonical (type, amount).

    Current records carry ``rate_type`` and ``amount`` columns. Older ones
    kept the same facts under several names (``rateType``, ``rate``,
    ``perVisitRate``, ``hourlyRate``, ``monthlyRate``); those live in
    ``legacy_fields`` and are only ever interpreted here.
    """
    if isinstance(record, Mapping):
        legacy: Mapping[str, Any] = record
        column_type = record.get("rate_type")
        column_amount = record.get("amount") if "rate_type" in record else None
        ref = record.get("rate_id") or record.get("id") or "unknown"
        employee_id = (
            record.get("employee_id")
            or record.get("employeeId")
            or record.get("employeeProfileId")
            or "unknown"
        )
    else:
        legacy = record.legacy_fields or {}
        column_type = record.rate_type
        column_amount = record.amount
        ref = record.rate_id
        employee_id = record.employee_id or record.employee_profile_id

    raw_type = column_type or legacy.get("rateType")
    if raw_type in _RATE_TYPE_VALUES:
        rate_type = RateType(raw_type)
    elif _is_number(legacy.get("monthlyRate")):
        rate_type = RateType.MONTHLY
    elif _is_number(legacy.get("hourlyRate")):
        rate_type = RateType.HOURLY
    else:
        rate_type = RateType.PER_VISIT

    amount = Decimal("0")
    if _is_number(column_amount):
        amount = Decimal(str(column_amount))
    else:
        for key in LEGACY_AMOUNT_KEYS:
            if _is_number(legacy.get(key)):
                amount = Decimal(str(legacy[key]))
                break

    min_expected = MIN_EXPECTED_RATES[rate_type]
    if Decimal("0") < amount < min_expected:
        logger.warning(
            "Suspiciously low %s rate detected: $%s. Expected minimum: $%s. "
            "Rate record: %s. Employee: %s",
            rate_type.value,
            amount,
            min_expected,
            ref,
            employee_id,
        )

    return RateSnapshot(type=rate_type, amount=amount)


class RateResolver:
    """Resolves the single applicable pay rate for an assignment.

    Rate selection order (first match wins):
    1. Location-scoped rate, most recent effective_date <= as_of
    2. Client-scoped rate, most recent effective_date <= as_of
    3. Unscoped rate, most recent effective_date <= as_of
    4. Legacy pass: steps 1-3 over records without an effective_date,
       ordered by creation time instead

    Each pass matches on ``employee_id`` first and then on
    ``employee_profile_id``, which older records use instead.

    No match is not an error: ``resolve`` returns None and the caller reports
    the assignment as missing a rate.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._memo: dict[tuple[str, date, str | None, str | None], RateSnapshot | None] = {}

    async def resolve(
        self,
        employee_id: str,
        as_of_date: date,
        location_id: str | None = None,
        client_id: str | None = None,
    ) -> RateSnapshot | None:
        """Resolve the effective rate for an employee on a date and scope."""
        key = (employee_id, as_of_date, location_id, client_id)
        if key in self._memo:
            return self._memo[key]

        record = await self._find_effective(employee_id, as_of_date, location_id, client_id)
        if record is None:
            record = await self._find_legacy(employee_id, as_of_date, location_id, client_id)

        snapshot = normalize_rate_record(record) if record is not None else None
        self._memo[key] = snapshot
        return snapshot

    async def has_rate(
        self,
        employee_id: str,
        as_of_date: date,
        location_id: str | None = None,
        client_id: str | None = None,
    ) -> bool:
        """Check if any rate resolves for the assignment."""
        return await self.resolve(employee_id, as_of_date, location_id, client_id) is not None

    @staticmethod
    def _scopes(location_id: str | None, client_id: str | None) -> list[tuple[Any, ...]]:
        """Scope filters in precedence order."""
        scopes: list[tuple[Any, ...]] = []
        if location_id:
            scopes.append((EmployeeRate.location_id == location_id,))
        if client_id:
            scopes.append((EmployeeRate.client_id == client_id,))
        scopes.append((EmployeeRate.location_id.is_(None), EmployeeRate.client_id.is_(None)))
        return scopes

    async def _find_effective(
        self,
        employee_id: str,
        as_of_date: date,
        location_id: str | None,
        client_id: str | None,
    ) -> EmployeeRate | None:
        for id_column in EMPLOYEE_ID_COLUMNS:
            for scope in self._scopes(location_id, client_id):
                result = await self.session.execute(
                    select(EmployeeRate)
                    .where(
                        id_column == employee_id,
                        EmployeeRate.effective_date.is_not(None),
                        EmployeeRate.effective_date <= as_of_date,
                        *scope,
                    )
                    .order_by(
                        EmployeeRate.effective_date.desc(), EmployeeRate.created_at.desc()
                    )
                    .limit(1)
                )
                record = result.scalars().first()
                if record is not None:
                    return record
        return None

    async def _find_legacy(
        self,
        employee_id: str,
        as_of_date: date,
        location_id: str | None,
        client_id: str | None,
    ) -> EmployeeRate | None:
        cutoff = datetime.combine(as_of_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        for id_column in EMPLOYEE_ID_COLUMNS:
            for scope in self._scopes(location_id, client_id):
                result = await self.session.execute(
                    select(EmployeeRate)
                    .where(
                        id_column == employee_id,
                        EmployeeRate.effective_date.is_(None),
                        EmployeeRate.created_at < cutoff,
                        *scope,
                    )
                    .order_by(EmployeeRate.created_at.desc())
                    .limit(1)
                )
                record = result.scalars().first()
                if record is not None:
                    logger.debug(
                        "Resolved legacy rate %s for employee %s by creation time",
                        record.rate_id,
                        employee_id,
                    )
                    return record
        return None
