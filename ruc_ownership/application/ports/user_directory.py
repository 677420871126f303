"""Port interface for the User/Team directory."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

from ruc_ownership.domain.entities.user import Team, User
from ruc_ownership.domain.value_objects.enums import Role


class UserDirectory(ABC):
    @abstractmethod
    async def get_user(self, user_id: uuid.UUID) -> User | None:
        ...

    @abstractmethod
    async def get_users(self, user_ids: list[uuid.UUID]) -> dict[uuid.UUID, User]:
        ...

    @abstractmethod
    async def teams_supervised_by(self, supervisor_id: uuid.UUID) -> list[Team]:
        ...

    @abstractmethod
    async def members_of_teams(self, team_ids: list[uuid.UUID]) -> list[User]:
        ...

    @abstractmethod
    async def reporting_to(self, user_id: uuid.UUID) -> list[User]:
        """Users whose ``reports_to_id`` points at *user_id*."""
        ...

    @abstractmethod
    async def users_with_role(self, role: Role) -> list[User]:
        ...
