"""User, Team and Requester — identity as seen by the ownership core."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from ruc_ownership.domain.value_objects.enums import Role


@dataclass
class User:
    id: uuid.UUID
    name: str
    role: Role
    email: str = ""
    team_id: uuid.UUID | None = None
    reports_to_id: uuid.UUID | None = None
    active: bool = True

    def is_commercial(self) -> bool:
        return self.role == Role.COMMERCIAL


@dataclass
class Team:
    id: uuid.UUID
    name: str
    supervisor_id: uuid.UUID | None = None
    member_user_ids: list[uuid.UUID] = field(default_factory=list)


@dataclass(frozen=True)
class Requester:
    """Authenticated caller, as supplied by the AuthN collaborator."""

    id: uuid.UUID
    role: Role
    team_id: uuid.UUID | None = None
