"""Reads and conditional writes against the service request table."""

import logging
import uuid

from sqlalchemy import ColumnElement, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import ServiceRequest
from app.services.errors import NotFoundError

logger = logging.getLogger(__name__)


async def get_request(session: AsyncSession, request_id: uuid.UUID) -> ServiceRequest:
    request = await session.get(ServiceRequest, request_id, populate_existing=True)
    if request is None:
        raise NotFoundError(f"Service request {request_id} not found.")
    return request


async def conditional_update(
    session: AsyncSession,
    request_id: uuid.UUID,
    conditions: list[ColumnElement[bool]],
    values: dict,
) -> bool:
    """UPDATE ... WHERE id = :id AND <conditions>. True if exactly one row changed.

    The store evaluates the conditions at write time, so a concurrent writer
    that got there first makes this return False instead of being overwritten.
    """
    stmt = (
        update(ServiceRequest)
        .where(ServiceRequest.id == request_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    changed = result.rowcount == 1
    if not changed:
        logger.info("Conditional update on %s matched no rows", request_id)
    return changed
