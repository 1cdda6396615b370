"""
Shared fixtures: an in-memory SQLite database per test, the seeded demo
tenant, and an HTTP client bound to the app with the test database.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("EMAIL_TEST_MODE", "true")
os.environ.setdefault("SMS_PROVIDER", "mock")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import pdf_service
from auth import create_access_token
from config import settings
from database import Base, enable_sqlite_savepoints, get_db
from main import app
from models import Customer, Subscription, Tenant, User, UserRole
from seed_demo_data import seed_demo_tenant_data
from tenant_scope import TenantScope

FAKE_PDF = b"%PDF-1.4 test document"


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    enable_sqlite_savepoints(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def demo_tenant(session_maker) -> Tenant:
    async with session_maker() as session:
        return await seed_demo_tenant_data(session)


@pytest.fixture
def scope(db, demo_tenant) -> TenantScope:
    return TenantScope(db, demo_tenant.id)


@pytest.fixture
async def other_tenant(db) -> Tenant:
    """A second tenant with one OWNER and no customers, created on the test's own session"""
    tenant = Tenant(name="Other ISP", slug="other-isp", branding={"primaryColor": "#111111"})
    db.add(tenant)
    await db.flush()
    db.add(User(
        tenant_id=tenant.id,
        name="Other Owner",
        email="owner@other-isp.com",
        hashed_password="not-used",
        role=UserRole.OWNER
    ))
    await db.commit()
    return tenant


@pytest.fixture(autouse=True)
def fake_pdf(monkeypatch, tmp_path):
    """Skip WeasyPrint and keep stored documents inside the test directory"""
    monkeypatch.setattr(pdf_service, "render_pdf", lambda html_content: FAKE_PDF)
    monkeypatch.setattr(settings, "PDF_STORAGE_DIR", str(tmp_path / "pdfs"))
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))


@pytest.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


async def headers_for(session_maker, email: str, tenant_id: int) -> dict:
    async with session_maker() as session:
        user = (await session.execute(
            select(User).where(User.email == email, User.tenant_id == tenant_id)
        )).scalar_one()
    return {"Authorization": f"Bearer {create_access_token(user.id, tenant_id)}"}


@pytest.fixture
async def staff_headers(session_maker, demo_tenant) -> dict:
    """Authorization headers of the demo staff, keyed by role"""
    return {
        UserRole.OWNER: await headers_for(session_maker, "admin@demo-isp.com", demo_tenant.id),
        UserRole.MANAGER: await headers_for(session_maker, "manager@demo-isp.com", demo_tenant.id),
        UserRole.SUPPORT: await headers_for(session_maker, "support@demo-isp.com", demo_tenant.id),
        UserRole.CASHIER: await headers_for(session_maker, "cashier@demo-isp.com", demo_tenant.id),
    }


@pytest.fixture
async def other_headers(session_maker, other_tenant) -> dict:
    return await headers_for(session_maker, "owner@other-isp.com", other_tenant.id)


async def subscription_by_username(session: AsyncSession, username: str) -> Subscription:
    return (await session.execute(select(Subscription).where(Subscription.username == username))).scalar_one()


async def customer_by_phone(session: AsyncSession, phone: str) -> Customer:
    return (await session.execute(select(Customer).where(Customer.phone == phone))).scalar_one()
