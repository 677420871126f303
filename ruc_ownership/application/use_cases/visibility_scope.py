"""VisibilityScopeResolver — role- and team-based visibility for a caller."""

from __future__ import annotations

import logging

from ruc_ownership.application.ports.user_directory import UserDirectory
from ruc_ownership.domain.entities.user import Requester, User
from ruc_ownership.domain.policies.capabilities import capabilities_for
from ruc_ownership.domain.policies.visibility import (
    SUPERVISOR_FALLBACK_ALL,
    SUPERVISOR_WITHOUT_TEAM,
    Scope,
    active_commercials,
)
from ruc_ownership.domain.value_objects.enums import Role

logger = logging.getLogger(__name__)


class VisibilityScopeResolver:
    """Turns a requester into a reusable Scope predicate.

    Resolution order:
      1. Global roles (sistemas, gerencia)  →  everything.
      2. Supervisor  →  active commercial members of the teams they supervise,
         else active commercials reporting to them directly,
         else an empty scope flagged with ``supervisor_without_team``.
      3. Commercial  →  own entities only.
      4. Anyone else  →  nothing.

    ``supervisor_fallback_all`` re-enables the legacy behavior of showing every
    commercial user to a supervisor without a team. It is off by default and
    logs a warning whenever it is used.
    """

    def __init__(self, user_directory: UserDirectory, *, supervisor_fallback_all: bool = False):
        self._users = user_directory
        self._fallback_all = supervisor_fallback_all

    async def scope_for(self, requester: Requester) -> Scope:
        caps = capabilities_for(requester.role)
        if caps.sees_everything:
            return Scope.everything()
        if caps.can_supervise_team:
            members, issue = await self._supervised_members(requester)
            return Scope.owners((m.id for m in members), issue=issue)
        if requester.role == Role.COMMERCIAL:
            return Scope.owners([requester.id])
        return Scope.nothing()

    async def visible_users(self, requester: Requester) -> list[User]:
        """Users whose portfolios the requester may browse."""
        caps = capabilities_for(requester.role)
        if caps.sees_everything:
            return active_commercials(await self._users.users_with_role(Role.COMMERCIAL))
        if caps.can_supervise_team:
            members, _ = await self._supervised_members(requester)
            return members
        if requester.role == Role.COMMERCIAL:
            me = await self._users.get_user(requester.id)
            return [me] if me is not None else []
        return []

    async def _supervised_members(self, requester: Requester) -> tuple[list[User], str | None]:
        teams = await self._users.teams_supervised_by(requester.id)
        if teams:
            members = active_commercials(
                await self._users.members_of_teams([t.id for t in teams])
            )
            logger.debug(
                "Supervisor %s: %d team(s), %d active member(s)",
                requester.id, len(teams), len(members),
            )
            return members, None

        direct = active_commercials(await self._users.reporting_to(requester.id))
        if direct:
            logger.info(
                "Supervisor %s has no team; using %d direct report(s)",
                requester.id, len(direct),
            )
            return direct, None

        if self._fallback_all:
            logger.warning(
                "Supervisor %s has no team or reports; fallback grants all commercial users",
                requester.id,
            )
            everyone = active_commercials(await self._users.users_with_role(Role.COMMERCIAL))
            return everyone, SUPERVISOR_FALLBACK_ALL

        logger.warning(
            "Supervisor %s has no team or direct reports; scope is empty", requester.id
        )
        return [], SUPERVISOR_WITHOUT_TEAM
