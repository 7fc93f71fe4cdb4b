"""Shared pytest fixtures for unit and integration tests."""

import os
import uuid
from decimal import Decimal

import pytest
from dotenv import load_dotenv

# Load .env first so TEST_POSTGRES_URL can come from there; the settings
# below only fill in what is missing so the app can be imported in tests.
load_dotenv()
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from httpx import ASGITransport, AsyncClient

from rental_ledger.main import app
from rental_ledger.config import settings
from rental_ledger.core.security import create_access_token
from rental_ledger.database import Database
from rental_ledger.models import Contract, PaymentMethod, Property, Tenant
from rental_ledger.models.enums import ContractState, UserRole

# Skip tests that need real row locking unless a PostgreSQL URL is provided
requires_postgres = pytest.mark.skipif(
    not os.getenv("TEST_POSTGRES_URL"),
    reason="TEST_POSTGRES_URL must be set",
)

MONTHLY_RENT = Decimal("1500.00")


@pytest.fixture
async def database():
    """Fresh in-memory database per test."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def db_session(database: Database):
    """Session on the test database."""
    async with database.session() as session:
        yield session


async def create_contract(
    session,
    rent: Decimal = MONTHLY_RENT,
    state: ContractState = ContractState.ACTIVE,
    code: str = None,
    tenant_name: str = "Ana Pérez",
    tax_id: str = "1234567-8",
) -> Contract:
    """Insert a property, a tenant and a contract between them."""
    suffix = uuid.uuid4().hex[:6]
    prop = Property(code=code or f"P-{suffix}", title=f"Apartamento {suffix}")
    tenant = Tenant(full_name=tenant_name, tax_id=tax_id)
    session.add_all([prop, tenant])
    await session.flush()

    contract = Contract(
        property_id=prop.id,
        tenant_id=tenant.id,
        monthly_rent=rent,
        state=state,
    )
    session.add(contract)
    await session.commit()
    return contract


@pytest.fixture
async def payment_method(db_session) -> PaymentMethod:
    method = PaymentMethod(code="TRANSFERENCIA", name="Transferencia bancaria")
    db_session.add(method)
    await db_session.commit()
    return method


@pytest.fixture
def make_contract(db_session):
    """Factory for extra contracts on the test session."""

    async def factory(**kwargs) -> Contract:
        return await create_contract(db_session, **kwargs)

    return factory


@pytest.fixture
async def contract(db_session) -> Contract:
    """Active contract with a monthly rent of 1500.00."""
    return await create_contract(db_session)


def make_headers(*roles: UserRole, user_id: uuid.UUID = None) -> dict:
    token = create_access_token(
        {"sub": str(user_id or uuid.uuid4()), "roles": [role.value for role in roles]}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict:
    return make_headers(UserRole.ADMIN)


@pytest.fixture
def oper_headers() -> dict:
    return make_headers(UserRole.OPER)


@pytest.fixture
def api_base() -> str:
    """Base URL for API requests."""
    return f"http://test{settings.API_V1_PREFIX}"


@pytest.fixture
async def async_client(database: Database, api_base: str):
    """Async HTTP client bound to the app, served from the test database."""
    app.state.database = database
    transport = ASGITransport(app=app)
    client = AsyncClient(transport=transport, base_url=api_base, timeout=30.0)
    yield client
    await client.aclose()
