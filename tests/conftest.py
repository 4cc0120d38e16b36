import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from datetime import date, datetime
from decimal import Decimal
from typing import AsyncGenerator, List, Optional
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.v1.fees.schemas import FeeItemCreate, FeeStructureCreate
from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.enums import Frequency
from app.core.models import SchoolClass, Student
from app.db.session import Base, get_db
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session


@pytest.fixture()
def current_user() -> CurrentUser:
    return CurrentUser(id=uuid4(), role="ADMIN", full_name="Accounts Admin")


@pytest.fixture()
async def client(db_session: AsyncSession, current_user: CurrentUser) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, with DB and auth dependencies overridden."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    async def override_get_current_user() -> CurrentUser:
        return current_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def make_class(db_session: AsyncSession):
    async def _make(grade: int = 5, section: str = "A", shift: str = "MORNING") -> UUID:
        obj = SchoolClass(grade=grade, section=section, shift=shift)
        db_session.add(obj)
        await db_session.commit()
        return obj.id

    return _make


@pytest.fixture()
def make_student(db_session: AsyncSession):
    async def _make(class_id: UUID, full_name: str = "Student", deleted: bool = False) -> UUID:
        obj = Student(class_id=class_id, full_name=full_name)
        if deleted:
            obj.deleted_at = datetime.utcnow()
        db_session.add(obj)
        await db_session.commit()
        return obj.id

    return _make


def _structure_payload(
    class_id: Optional[UUID] = None,
    class_ids: Optional[List[UUID]] = None,
    academic_year: str = "2024-2025",
    effective_from: date = date(2024, 4, 15),
    items: Optional[List[FeeItemCreate]] = None,
) -> FeeStructureCreate:
    if items is None:
        items = [
            FeeItemCreate(category="Academic", label="Tuition", amount=Decimal("100"), frequency=Frequency.MONTHLY),
            FeeItemCreate(category="Academic", label="Exam", amount=Decimal("300"), frequency=Frequency.TERM),
            FeeItemCreate(category="Facilities", label="Library", amount=Decimal("1000"), frequency=Frequency.ANNUAL),
            FeeItemCreate(category="Admission", label="Admission", amount=Decimal("50"), frequency=Frequency.ONE_TIME),
        ]
    return FeeStructureCreate(
        class_id=class_id,
        class_ids=class_ids or [],
        academic_year=academic_year,
        name="Standard fees",
        effective_from=effective_from,
        items=items,
    )


@pytest.fixture()
def structure_payload():
    """Builder for FeeStructureCreate; default items annualize to 3150."""
    return _structure_payload
