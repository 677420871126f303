"""Visibility endpoint — who the caller can see."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ruc_ownership.application.use_cases.visibility_scope import VisibilityScopeResolver
from ruc_ownership.domain.entities.user import Requester
from ruc_ownership.domain.policies.capabilities import capabilities_for
from ruc_ownership.infrastructure.api.auth import get_requester
from ruc_ownership.infrastructure.api.dependencies import get_scope_resolver
from ruc_ownership.infrastructure.api.serializers import serialize_user

router = APIRouter(prefix="/scope", tags=["scope"])


@router.get("")
async def get_scope(
    requester: Requester = Depends(get_requester),
    scopes: VisibilityScopeResolver = Depends(get_scope_resolver),
):
    """The caller's role capabilities, visibility scope and visible users."""
    scope = await scopes.scope_for(requester)
    users = await scopes.visible_users(requester)
    caps = capabilities_for(requester.role)
    return {
        "user_id": str(requester.id),
        "role": requester.role.value,
        "capabilities": {
            "can_assign_globally": caps.can_assign_globally,
            "can_supervise_team": caps.can_supervise_team,
            "can_classify": caps.can_classify,
            "sees_everything": caps.sees_everything,
        },
        "unrestricted": scope.unrestricted,
        "owner_ids": sorted(str(i) for i in scope.owner_ids),
        "issue": scope.issue,
        "users": [serialize_user(u) for u in users],
    }
