"""Operator authorization by jurisdiction.

An operator carries a capability value: either Unrestricted (administrators)
or Restricted to one jurisdiction. Authorization is a single call to
capability.permits(jurisdiction_id); the role is consulted only once, when
the capability is built from the operator row.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from rdam.db.models.base import OperatorRole
from rdam.services.errors import AdminRequiredError, JurisdictionMismatchError

if TYPE_CHECKING:
    from uuid import UUID


@dataclass(frozen=True, slots=True)
class Unrestricted:
    """Access to every jurisdiction."""

    @property
    def scope(self) -> int | None:
        return None

    def permits(self, jurisdiction_id: int) -> bool:  # noqa: ARG002
        return True


@dataclass(frozen=True, slots=True)
class Restricted:
    """Access limited to a single jurisdiction."""

    jurisdiction_id: int

    @property
    def scope(self) -> int | None:
        return self.jurisdiction_id

    def permits(self, jurisdiction_id: int) -> bool:
        return jurisdiction_id == self.jurisdiction_id


Capability = Unrestricted | Restricted

UNRESTRICTED = Unrestricted()


@dataclass(frozen=True, slots=True)
class ActingOperator:
    """Authenticated internal operator performing an operation.

    Attributes:
        operator_id: Operator identifier, recorded as the actor in history.
        username: Login name, for logs.
        capability: Jurisdiction access of this operator.
    """

    operator_id: UUID
    username: str
    capability: Capability

    @property
    def is_admin(self) -> bool:
        return isinstance(self.capability, Unrestricted)

    def require(self, jurisdiction_id: int) -> None:
        """Raise JurisdictionMismatchError unless the jurisdiction is permitted."""
        if not self.capability.permits(jurisdiction_id):
            raise JurisdictionMismatchError(self.operator_id, jurisdiction_id)

    def require_admin(self) -> None:
        """Raise AdminRequiredError unless the operator is an administrator."""
        if not self.is_admin:
            raise AdminRequiredError(self.operator_id)


def capability_for(role: OperatorRole, jurisdiction_id: int | None) -> Capability:
    """Build the capability of an operator row.

    Raises:
        ValueError: If a non-admin operator has no jurisdiction.
    """
    if role == OperatorRole.ADMIN:
        return UNRESTRICTED
    if jurisdiction_id is None:
        msg = "Operators must be bound to a jurisdiction"
        raise ValueError(msg)
    return Restricted(jurisdiction_id)
