import os
import tempfile

# Настройки читаются при импорте config.settings, поэтому окружение задаём до импортов
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("UPLOAD_PATH", tempfile.mkdtemp(prefix="booking-uploads-"))
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")
os.environ["ADMIN_IDS"] = ""
os.environ["GATEWAY_SECRET"] = ""

from datetime import datetime, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from database.base import init_db  # noqa: E402
from database.models.user import User, UserRole  # noqa: E402
from database.models.vehicle import VehicleKind, RentType  # noqa: E402
from services.access import Caller  # noqa: E402
from services.events import NotificationDispatcher  # noqa: E402
from services.vehicle_service import VehicleService  # noqa: E402


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class RecordingQueue:
    """Очередь, которая просто запоминает опубликованные события"""

    def __init__(self):
        self.events = []

    async def put(self, event):
        self.events.append(event)

    async def get(self):
        raise NotImplementedError

    async def close(self):
        pass

    def types(self):
        return [e.type for e in self.events]


class BrokenQueue(RecordingQueue):
    async def put(self, event):
        raise ConnectionError("queue is down")


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def queue():
    return RecordingQueue()


@pytest.fixture
def dispatcher(queue):
    return NotificationDispatcher(queue)


async def _create_user(session_factory, full_name, email, role, **extra) -> User:
    async with session_factory() as session:
        user = User(full_name=full_name, email=email, role=role, **extra)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest.fixture
async def admin(session_factory) -> Caller:
    user = await _create_user(session_factory, "Asha Admin", "admin@example.com", UserRole.ADMIN)
    return Caller(user.id, UserRole.ADMIN)


@pytest.fixture
async def owner(session_factory) -> Caller:
    user = await _create_user(
        session_factory, "Omkar Owner", "owner@example.com", UserRole.CLIENT,
        business_name="Omkar Travels",
    )
    return Caller(user.id, UserRole.CLIENT)


@pytest.fixture
async def renter(session_factory) -> Caller:
    user = await _create_user(
        session_factory, "Ravi Renter", "ravi@example.com", UserRole.USER, phone="+919800000001"
    )
    return Caller(user.id, UserRole.USER)


@pytest.fixture
async def stranger(session_factory) -> Caller:
    user = await _create_user(session_factory, "Sam Stranger", "sam@example.com", UserRole.USER)
    return Caller(user.id, UserRole.USER)


@pytest.fixture
def make_vehicle(session_factory, owner):
    """Фабрика транспорта у владельца owner"""

    async def factory(
        title="Swift Dzire",
        vehicle_kind=VehicleKind.RENT,
        rent_type=RentType.HOURLY,
        base_price=Decimal("100"),
        **extra
    ):
        async with session_factory() as session:
            vehicle = await VehicleService.create_vehicle(
                session,
                owner_id=owner.user_id,
                title=title,
                vehicle_kind=vehicle_kind,
                base_price=base_price,
                rent_type=rent_type,
                **extra
            )
            await session.commit()
            await session.refresh(vehicle)
            return vehicle

    return factory
