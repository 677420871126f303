"""Visibility scope — a reusable predicate over owners and users."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from ruc_ownership.domain.entities.assignment import AssignmentRecord
from ruc_ownership.domain.entities.user import User

SUPERVISOR_WITHOUT_TEAM = "supervisor_without_team"
SUPERVISOR_FALLBACK_ALL = "supervisor_fallback_all_commercials"


@dataclass(frozen=True)
class Scope:
    """Which owners' entities a caller may see.

    ``unrestricted`` matches everything; otherwise only records whose owner is
    in ``owner_ids`` match. ``issue`` is set when the scope was derived from an
    incomplete team hierarchy and should be surfaced to the caller.
    """

    unrestricted: bool = False
    owner_ids: frozenset[uuid.UUID] = frozenset()
    issue: str | None = None

    @classmethod
    def everything(cls) -> Scope:
        return cls(unrestricted=True)

    @classmethod
    def nothing(cls, issue: str | None = None) -> Scope:
        return cls(issue=issue)

    @classmethod
    def owners(cls, ids: Iterable[uuid.UUID], issue: str | None = None) -> Scope:
        return cls(owner_ids=frozenset(ids), issue=issue)

    @property
    def is_empty(self) -> bool:
        return not self.unrestricted and not self.owner_ids

    def allows_owner(self, owner_id: uuid.UUID | None) -> bool:
        if self.unrestricted:
            return True
        return owner_id is not None and owner_id in self.owner_ids

    def allows_user(self, user: User) -> bool:
        return self.allows_owner(user.id)

    def allows_record(self, record: AssignmentRecord) -> bool:
        return self.allows_owner(record.owner_id)

    def narrow(self, user_ids: Iterable[uuid.UUID] | None) -> Scope:
        """Intersect with a caller-selected subset of users.

        An empty or missing selection leaves the scope unchanged; a selection
        can never widen it.
        """
        wanted = frozenset(user_ids or ())
        if not wanted:
            return self
        if self.unrestricted:
            return Scope.owners(wanted, issue=self.issue)
        return Scope.owners(self.owner_ids & wanted, issue=self.issue)


def active_commercials(users: Iterable[User]) -> list[User]:
    """Active commercial-role users, ordered by name for stable output."""
    return sorted(
        (u for u in users if u.active and u.is_commercial()),
        key=lambda u: (u.name.lower(), str(u.id)),
    )
