"""Caller identity from a bearer JWT, and the capability check used by routes."""

from __future__ import annotations

import logging
import uuid

from fastapi import Depends, HTTPException, Request
from jose import JWTError, jwt

from ruc_ownership.config import settings
from ruc_ownership.domain.entities.user import Requester
from ruc_ownership.domain.errors import Forbidden
from ruc_ownership.domain.policies.capabilities import CAPABILITY_NAMES, has_capability
from ruc_ownership.domain.value_objects.enums import Role

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"}
    )


def decode_requester(token: str) -> Requester:
    """Verify *token* and build the Requester from its ``sub``/``role``/``team_id`` claims."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise _unauthorized("Invalid token") from exc

    try:
        user_id = uuid.UUID(str(payload.get("sub", "")))
    except ValueError as exc:
        raise _unauthorized("Token subject is not a user id") from exc

    team_id = None
    if payload.get("team_id"):
        try:
            team_id = uuid.UUID(str(payload["team_id"]))
        except ValueError:
            logger.warning("Ignoring malformed team_id claim for %s", user_id)

    return Requester(id=user_id, role=Role.parse(payload.get("role")), team_id=team_id)


async def get_requester(request: Request) -> Requester:
    auth_header = request.headers.get("authorization", "")
    token = auth_header[7:].strip() if auth_header.lower().startswith("bearer ") else ""
    if not token:
        raise _unauthorized("Missing bearer token")
    return decode_requester(token)


def require_capability(capability: str):
    """Dependency factory: the caller's role must grant *capability*."""
    if capability not in CAPABILITY_NAMES:
        raise ValueError(f"Unknown capability: {capability}")

    async def _check(requester: Requester = Depends(get_requester)) -> Requester:
        if not has_capability(requester.role, capability):
            raise Forbidden(f"Role {requester.role.value} lacks {capability}")
        return requester

    return _check


def require_any_capability(*capabilities: str):
    async def _check(requester: Requester = Depends(get_requester)) -> Requester:
        if not any(has_capability(requester.role, c) for c in capabilities):
            raise Forbidden(f"Role {requester.role.value} lacks {' or '.join(capabilities)}")
        return requester

    return _check
