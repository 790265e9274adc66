"""Trámite number generation.

Numbers have the form PREFIX-YYYYMMDD-NNNN, where NNNN is the 1-based
position of the request among those created that day. The counter lives
in the database (tramite_sequences) and is incremented with a single
upsert, so concurrent API instances never hand out the same value. The
unique constraint on certificate_requests.tramite_number remains the last
line of defense; collisions are retried by the lifecycle coordinator.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from sqlalchemy.dialects.postgresql import insert

from rdam.db.models.requests import TramiteSequence

if TYPE_CHECKING:
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class SequenceSource(Protocol):
    """Source of per-day sequence values, strictly increasing per day."""

    async def next_value(self, day: date) -> int: ...


class DatabaseSequenceSource:
    """Per-day counter backed by an atomic PostgreSQL upsert."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def next_value(self, day: date) -> int:
        stmt = (
            insert(TramiteSequence)
            .values(day=day, last_value=1)
            .on_conflict_do_update(
                index_elements=[TramiteSequence.day],
                set_={"last_value": TramiteSequence.last_value + 1},
            )
            .returning(TramiteSequence.last_value)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()


class TramiteNumberGenerator:
    """Formats trámite numbers from a sequence source."""

    def __init__(self, source: SequenceSource, prefix: str = "RDAM") -> None:
        self._source = source
        self._prefix = prefix

    async def next_number(self, day: date) -> str:
        value = await self._source.next_value(day)
        return format_tramite_number(self._prefix, day, value)


def format_tramite_number(prefix: str, day: date, value: int) -> str:
    """Render PREFIX-YYYYMMDD-NNNN; values above 9999 keep all digits."""
    return f"{prefix}-{day:%Y%m%d}-{value:04d}"
