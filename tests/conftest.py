import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.models import Base, Category, Notification, Service, ServiceRequest, Specialty, Technician
from app.services.notifications import NotificationSink
from app.services.requests import create_request


@pytest.fixture
async def engine(tmp_path):
    # File-backed so separate sessions really use separate connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier(session_factory):
    return NotificationSink(session_factory, webhook_url="")


@pytest.fixture
async def catalog(session):
    """Category ids: plumbing (fixed price, 10000) and electrical (quoted, 5000)."""
    plumbing = Category(name="Plumbing", base_price=10000)
    electrical = Category(name="Electrical", base_price=5000)
    session.add_all([plumbing, electrical])
    await session.flush()
    session.add_all(
        [
            Service(category_id=plumbing.id, name="Leak repair", price_type="fixed"),
            Service(
                category_id=electrical.id,
                name="Electrical wiring installation",
                price_type="quote",
                min_price=5000,
                max_price=50000,
            ),
            Specialty(category_id=plumbing.id, name="Plumber"),
            Specialty(category_id=electrical.id, name="Electrician"),
        ]
    )
    await session.commit()
    return {"plumbing": plumbing.id, "electrical": electrical.id}


async def make_technician(
    session, name="Tech", specialties=None, active=True, wallet_balance=5000, verified=True
) -> uuid.UUID:
    technician = Technician(
        name=name,
        specialties=specialties or [],
        active=active,
        verified=verified,
        wallet_balance=wallet_balance,
        rating=0,
        review_count=0,
    )
    session.add(technician)
    await session.commit()
    return technician.user_id


async def make_request(session, category_id, client_id=None, **kwargs) -> ServiceRequest:
    kwargs.setdefault("description", "Water everywhere")
    kwargs.setdefault("address", "Rua 1, Luanda")
    return await create_request(
        session,
        client_id=client_id or uuid.uuid4(),
        category_id=category_id,
        **kwargs,
    )


async def reload(session, request_id) -> ServiceRequest:
    return await session.get(ServiceRequest, request_id, populate_existing=True)


async def reload_technician(session, technician_id) -> Technician:
    return await session.get(Technician, technician_id, populate_existing=True)


async def notifications_for(session_factory, user_id) -> list[Notification]:
    async with session_factory() as s:
        result = await s.execute(
            select(Notification).where(Notification.user_id == user_id).order_by(Notification.created_at)
        )
        return list(result.scalars().all())
