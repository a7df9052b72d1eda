"""Live read feeds over periods and entries.

Each feed polls the ledger and yields a fresh snapshot whenever the data
changed since the last one it yielded. The first snapshot is always
yielded. Consumers stop a feed by leaving the ``async for`` loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Hashable

from payroll_reconciler.config import get_settings
from payroll_reconciler.models import PayrollEntry, PayrollPeriod
from payroll_reconciler.services.ledger_service import EntryLedger

logger = logging.getLogger(__name__)

_NOTHING_YET = object()


def period_fingerprint(period: PayrollPeriod | None) -> Hashable:
    if period is None:
        return None
    return (period.version, period.status)


def entries_fingerprint(entries: list[PayrollEntry]) -> Hashable:
    # Order-independent: the feed may degrade to unordered reads
    return frozenset(
        (entry.entry_id, str(entry.amount), entry.updated_at) for entry in entries
    )


class LedgerFeed:
    """Polling subscription to one period's ledger data."""

    def __init__(self, ledger: EntryLedger, poll_interval: float | None = None):
        self.ledger = ledger
        if poll_interval is None:
            poll_interval = get_settings().feed_poll_interval_seconds
        self.poll_interval = poll_interval

    async def watch_period(self, period_id: str) -> AsyncIterator[PayrollPeriod | None]:
        """Yield the period record (None while absent) on every change."""
        last: Hashable = _NOTHING_YET
        while True:
            period = await self.ledger.get_period(period_id)
            fingerprint = period_fingerprint(period)
            if fingerprint != last:
                last = fingerprint
                yield period
            await asyncio.sleep(self.poll_interval)

    async def watch_entries(self, period_id: str) -> AsyncIterator[list[PayrollEntry]]:
        """Yield the period's entries on every change.

        Entries normally arrive in creation order; when the ordered query
        is unavailable they arrive in arbitrary order.
        """
        last: Hashable = _NOTHING_YET
        while True:
            entries = await self.ledger.list_entries(period_id)
            fingerprint = entries_fingerprint(entries)
            if fingerprint != last:
                last = fingerprint
                logger.debug("Entry feed for period %s: %d entries", period_id, len(entries))
                yield entries
            await asyncio.sleep(self.poll_interval)
