"""CapabilityPolicy — what each role is allowed to do."""

from __future__ import annotations

from dataclasses import dataclass

from ruc_ownership.domain.value_objects.enums import Role


@dataclass(frozen=True)
class Capabilities:
    can_assign_globally: bool = False
    can_supervise_team: bool = False
    can_classify: bool = False
    sees_everything: bool = False


CAPABILITIES: dict[Role, Capabilities] = {
    Role.SYSTEMS_ADMIN: Capabilities(
        can_assign_globally=True, can_classify=True, sees_everything=True
    ),
    Role.MANAGEMENT_ADMIN: Capabilities(
        can_assign_globally=True, can_classify=True, sees_everything=True
    ),
    Role.TEAM_SUPERVISOR: Capabilities(can_supervise_team=True, can_classify=True),
    Role.COMMERCIAL: Capabilities(can_classify=True),
    Role.BACK_OFFICE: Capabilities(),
}

CAPABILITY_NAMES = frozenset(
    ("can_assign_globally", "can_supervise_team", "can_classify", "sees_everything")
)


def capabilities_for(role: Role) -> Capabilities:
    return CAPABILITIES.get(role, Capabilities())


def has_capability(role: Role, capability: str) -> bool:
    if capability not in CAPABILITY_NAMES:
        raise ValueError(f"Unknown capability: {capability}")
    return bool(getattr(capabilities_for(role), capability))


def can_start_bulk_assignment(role: Role) -> bool:
    caps = capabilities_for(role)
    return caps.can_assign_globally or caps.can_supervise_team
