import uuid

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Category, Service
from app.services.errors import NotFoundError


async def get_category(session: AsyncSession, category_id: uuid.UUID) -> Category:
    category = await session.get(Category, category_id)
    if category is None or not category.active:
        raise NotFoundError(f"Category {category_id} not found.")
    return category


async def category_name(session: AsyncSession, category_id: uuid.UUID) -> str | None:
    return await session.scalar(select(Category.name).where(Category.id == category_id))


async def resolve_service(
    session: AsyncSession,
    category_id: uuid.UUID,
    service_id: uuid.UUID | None = None,
) -> Service | None:
    """The service a request belongs to.

    Requests only store their category, so the service is the given
    ``service_id`` when it belongs to the category, otherwise the category's
    first active service.
    """
    if service_id is not None:
        service = await session.get(Service, service_id)
        if service is not None and service.category_id == category_id and service.active:
            return service

    result = await session.execute(
        select(Service)
        .where(Service.category_id == category_id, Service.active.is_(True))
        .order_by(Service.created_at, Service.name)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def category_takes_quotes(session: AsyncSession, category_id: uuid.UUID) -> bool:
    """True when any active service in the category is quote-priced."""
    stmt = select(
        exists().where(
            Service.category_id == category_id,
            Service.active.is_(True),
            Service.price_type == "quote",
        )
    )
    return bool(await session.scalar(stmt))
