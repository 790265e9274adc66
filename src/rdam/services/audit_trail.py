"""Append-only state history of certificate requests.

One entry is written per state transition, including the initial PENDING
entry, inside the same database transaction as the state change itself.
Entries are never updated or deleted by the application.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select

from rdam.db.models.requests import RequestStateHistory

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from rdam.db.models.base import RequestState


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """Immutable view of one state history row.

    Attributes:
        request_id: Owning certificate request.
        previous_state: State before the change (None for the creation entry).
        new_state: State after the change.
        actor_id: Operator who caused the change (None for automated changes).
        changed_at: Transaction timestamp of the change.
        seq: Monotonic ordering key.
    """

    request_id: UUID
    previous_state: RequestState | None
    new_state: RequestState
    actor_id: UUID | None
    changed_at: datetime | None
    seq: int | None


class AuditTrail:
    """Writes and reads request state history within a session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(
        self,
        request_id: UUID,
        previous_state: RequestState | None,
        new_state: RequestState,
        actor_id: UUID | None = None,
    ) -> None:
        """Stage a history entry; it is committed with the state change."""
        self._session.add(
            RequestStateHistory(
                request_id=request_id,
                previous_state=previous_state,
                new_state=new_state,
                actor_id=actor_id,
            )
        )

    async def entries(self, request_id: UUID) -> list[AuditEntry]:
        """Return the history of a request in the order it was written."""
        result = await self._session.execute(
            select(RequestStateHistory)
            .where(RequestStateHistory.request_id == request_id)
            .order_by(RequestStateHistory.seq)
        )
        return [
            AuditEntry(
                request_id=row.request_id,
                previous_state=row.previous_state,
                new_state=row.new_state,
                actor_id=row.actor_id,
                changed_at=row.changed_at,
                seq=row.seq,
            )
            for row in result.scalars()
        ]
