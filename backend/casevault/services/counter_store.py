"""
CaseVault Backend - Counter Store
===================================

What:  Durable per-namespace, per-year monotonic counters.
How:   One atomic statement per increment:

           INSERT INTO code_counters (namespace, year, last_num)
           VALUES (:ns, :year, :floor + 1)
           ON CONFLICT (namespace, year) DO UPDATE
               SET last_num = CASE WHEN code_counters.last_num < :floor
                                   THEN :floor
                                   ELSE code_counters.last_num END + 1
           RETURNING last_num

       The row lock taken by the upsert serializes concurrent increments of
       the same (namespace, year); different rows never contend.
Who:   SequentialCodeAllocator (case/backlog codes) and CategoryResolver
       (category ids).

Floor:
    `floor` guarantees the returned value is strictly greater than an existing
    maximum the counter does not know about (rows seeded before the counter
    existed). With floor=0 this is a plain increment.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from casevault.database import dialect_insert
from casevault.exceptions import StoreError
from casevault.models.counter import CodeCounter, CounterNamespace

logger = logging.getLogger(__name__)


class CounterStore:
    """Stateless; the session (and its transaction) is supplied per call."""

    async def next_value(
        self,
        db: AsyncSession,
        namespace: CounterNamespace,
        year: int,
        floor: int = 0,
    ) -> int:
        """
        Atomically increment and return the counter for (namespace, year).

        Returns:
            The new value: 1 for the first call of a year (with floor=0),
            then 2, 3, ... Always > floor.

        Raises:
            StoreError: the statement failed. No value was issued.
        """
        if year < 0 or floor < 0:
            raise ValueError("year and floor must be non-negative")

        table = CodeCounter.__table__
        ns = CounterNamespace(namespace).value
        now = datetime.now(timezone.utc)

        stmt = dialect_insert(db, table).values(
            namespace=ns,
            year=year,
            last_num=floor + 1,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.namespace, table.c.year],
            set_={
                "last_num": case(
                    (table.c.last_num < floor, floor),
                    else_=table.c.last_num,
                ) + 1,
                "updated_at": now,
            },
        ).returning(table.c.last_num)

        try:
            result = await db.execute(stmt)
            value = result.scalar_one()
        except SQLAlchemyError as e:
            logger.error(
                "Counter increment failed for %s/%02d: %s",
                ns, year, str(e),
                exc_info=True,
            )
            raise StoreError(
                context={"namespace": ns, "year": year, "error_type": type(e).__name__},
            ) from e

        logger.debug("Counter %s/%02d -> %d", ns, year, value)
        return value


# ── Singleton Instance ────────────────────────────────────────────────────
counter_store = CounterStore()
