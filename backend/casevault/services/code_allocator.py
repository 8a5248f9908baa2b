"""
CaseVault Backend - Sequential Code Allocator
===============================================

What:  Issues human-readable record codes: ECSI-25-001, BLG-25-042.
How:   year = current UTC year mod 100; one CounterStore increment per call;
       format "{prefix}-{year:02d}-{number:03d}".
Who:   RecordService, inside the transaction that inserts the record.

Guarantees:
    - Codes of one (namespace, year) are distinct and increase by one per
      successful allocation, under any concurrency.
    - The number restarts at 001 when the year rolls over.
    - Numbers past 999 widen (ECSI-25-1000); a WARNING is logged so the
      operator can decide whether to change the prefix.
    - A failed store call issues nothing.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from casevault.exceptions import ValidationError
from casevault.models.counter import CounterNamespace
from casevault.services.counter_store import CounterStore, counter_store

logger = logging.getLogger(__name__)

PREFIX_PATTERN = re.compile(r"^[A-Z]{2,6}$")
CODE_PATTERN = re.compile(r"^[A-Z]{2,6}-\d{2}-\d{3,}$")

# Last number that fits the three-digit field
_NARROW_MAX = 999

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_code(prefix: str, year: int, number: int) -> str:
    return f"{prefix}-{year:02d}-{number:03d}"


class SequentialCodeAllocator:
    """
    Args:
        store: Counter backend (the module singleton by default).
        clock: Returns the current time; tests pass a fixed clock to pin
               the year. Naive datetimes are treated as UTC.
    """

    def __init__(self, store: Optional[CounterStore] = None, clock: Optional[Clock] = None):
        self._store = store or counter_store
        self._clock = clock or utc_now

    def current_year(self) -> int:
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return now.year % 100

    async def allocate(
        self,
        db: AsyncSession,
        namespace: CounterNamespace,
        prefix: str,
    ) -> str:
        """
        Issue the next code for `namespace` with `prefix`.

        Raises:
            ValidationError: prefix is not 2-6 uppercase letters.
            StoreError: the counter could not be incremented.
        """
        if not PREFIX_PATTERN.match(prefix or ""):
            raise ValidationError(
                message=f"Invalid code prefix '{prefix}'. Expected 2-6 uppercase letters.",
                field="prefix",
            )

        year = self.current_year()
        number = await self._store.next_value(db, namespace, year)

        if number > _NARROW_MAX:
            logger.warning(
                "Code counter %s/%02d passed %d; issuing %d-digit number",
                CounterNamespace(namespace).value, year, _NARROW_MAX, len(str(number)),
            )

        code = format_code(prefix, year, number)
        logger.info("Allocated code %s", code)
        return code


# ── Singleton Instance ────────────────────────────────────────────────────
code_allocator = SequentialCodeAllocator()
