"""Domain enums — pure Python, no external dependencies."""

from enum import Enum


class Role(str, Enum):
    SYSTEMS_ADMIN = "sistemas"
    MANAGEMENT_ADMIN = "gerencia"
    TEAM_SUPERVISOR = "supervisorcomercial"
    COMMERCIAL = "comercial"
    BACK_OFFICE = "backoffice"

    @classmethod
    def parse(cls, raw: str | None) -> "Role":
        """Map a role claim to a Role; unknown values become BACK_OFFICE."""
        if not raw:
            return cls.BACK_OFFICE
        key = raw.strip().lower()
        for role in cls:
            if role.value == key or role.name.lower() == key:
                return role
        return cls.BACK_OFFICE


class AuditAction(str, Enum):
    ASSIGN = "assign"
    REASSIGN = "reassign"
    NO_CHANGE = "no_change"
    SKIP_CONFLICT = "skip_conflict"
    NOT_FOUND = "not_found"
