"""Health check endpoint."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ruc_ownership.adapters.persistence.database import get_session
from ruc_ownership.adapters.persistence.models import AssignmentModel
from ruc_ownership.config import settings

router = APIRouter(tags=["health"])

logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """Ledger reachability and which entity directory is wired in."""
    try:
        await session.execute(select(AssignmentModel.id).limit(1))
        ledger = "ok"
    except SQLAlchemyError as e:
        logger.warning("Health check could not read the assignment ledger: %s", e)
        ledger = f"error: {e.__class__.__name__}"

    return {
        "status": "ok" if ledger == "ok" else "degraded",
        "ledger": ledger,
        "entity_directory": "remote" if settings.entity_directory_url else "local",
    }
