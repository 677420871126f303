"""Tests for domain enums."""

from ruc_ownership.domain.value_objects.enums import AuditAction, Role


def test_role_values():
    assert Role.SYSTEMS_ADMIN.value == "sistemas"
    assert Role.MANAGEMENT_ADMIN.value == "gerencia"
    assert Role.TEAM_SUPERVISOR.value == "supervisorcomercial"
    assert Role.COMMERCIAL.value == "comercial"
    assert Role.BACK_OFFICE.value == "backoffice"


def test_role_parse_accepts_value_and_name():
    assert Role.parse("comercial") == Role.COMMERCIAL
    assert Role.parse("  Gerencia ") == Role.MANAGEMENT_ADMIN
    assert Role.parse("team_supervisor") == Role.TEAM_SUPERVISOR


def test_role_parse_unknown_falls_back_to_back_office():
    assert Role.parse("marketing") == Role.BACK_OFFICE
    assert Role.parse(None) == Role.BACK_OFFICE
    assert Role.parse("") == Role.BACK_OFFICE


def test_audit_action_values():
    assert [a.value for a in AuditAction] == [
        "assign", "reassign", "no_change", "skip_conflict", "not_found",
    ]
