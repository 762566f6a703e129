import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("CRON_API_KEY", "test-cron-key")

from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from feecycle.core.config import settings
from feecycle.core.models import Batch, Course, CourseLevel, Student
from feecycle.db.session import Base, build_engine, get_db
from feecycle.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture()
async def engine():
    """One in-memory SQLite database per test, shared by every connection through StaticPool."""
    test_engine = build_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture()
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def make_token() -> Callable[..., str]:
    """Sign claims the way the operators' identity service does."""

    def _make(claims: Dict, expires_minutes: int = 15) -> str:
        payload = dict(claims, exp=datetime.now(timezone.utc) + timedelta(minutes=expires_minutes))
        return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    return _make


@pytest.fixture()
def auth_headers(make_token) -> Dict[str, str]:
    token = make_token({"sub": str(uuid4()), "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_course(db_session: AsyncSession):
    async def _make(
        stage: str = "beginner",
        levels: Optional[List[Tuple[int, int, Optional[int]]]] = None,
        is_active: bool = True,
    ) -> Course:
        course = Course(course_name=stage, display_name=stage.title(), is_active=is_active)
        db_session.add(course)
        await db_session.flush()
        for level_number, fee_amount, duration in levels or [(1, 2000, None)]:
            db_session.add(
                CourseLevel(
                    course_id=course.id,
                    level_number=level_number,
                    fee_amount=fee_amount,
                    duration_months=duration,
                )
            )
        await db_session.commit()
        return course

    return _make


@pytest.fixture()
def make_batch(db_session: AsyncSession):
    async def _make(
        start_date: date,
        stage: str = "beginner",
        level: int = 1,
        status: str = "active",
        max_students: Optional[int] = None,
    ) -> Batch:
        suffix = uuid4().hex[:8]
        batch = Batch(
            batch_name=f"Batch {suffix}",
            batch_code=f"B-{suffix}",
            stage=stage,
            level=level,
            status=status,
            max_students=max_students,
            start_date=start_date,
        )
        db_session.add(batch)
        await db_session.commit()
        return batch

    return _make


@pytest.fixture()
def make_student(db_session: AsyncSession):
    async def _make(
        name: str = "Asha Rao",
        enrollment_date: Optional[date] = date(2025, 1, 15),
        stage: str = "beginner",
        level: int = 1,
        batch: Optional[Batch] = None,
        fee_cycle_start_date: Optional[date] = None,
        is_active: bool = True,
    ) -> Student:
        student = Student(
            student_code=f"STU-TEST-{uuid4().hex[:10]}",
            student_name=name,
            stage=stage,
            level=level,
            batch_id=batch.id if batch is not None else None,
            enrollment_date=enrollment_date,
            fee_cycle_start_date=fee_cycle_start_date,
            is_active=is_active,
        )
        db_session.add(student)
        await db_session.commit()
        return student

    return _make
