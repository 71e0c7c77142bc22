# tests/conftest.py
import os
import sys
import logging
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from typing import List, Optional

# Settings are read at import time: bootstrap env before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "INFO")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice import models  # noqa: F401
from backoffice.core.security import create_access_token
from backoffice.database import Base, get_db
from backoffice.main import app
from backoffice.models.company import Company, CompanyMember, CompanyRole
from backoffice.models.product import Product
from backoffice.models.user import User
from backoffice.schemas.sale import SaleCreate, SaleItemCreate
from backoffice.services.sale_service import SaleService


# =========================
# Logging -> stdout
# =========================
@pytest.fixture(scope="session", autouse=True)
def _tests_log_to_stdout():
    root = logging.getLogger()
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout
               for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)
    root.setLevel(os.getenv("TEST_LOG_LEVEL", "INFO").upper())


# Make anyio run on asyncio (so our async fixtures work everywhere)
@pytest.fixture(scope="session", autouse=True)
def anyio_backend():
    return "asyncio"


# ==============================================================
# Database: one in-memory SQLite per test
# ==============================================================

@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ==============================================================
# Factories
# ==============================================================

async def make_user(db: AsyncSession, email: str, name: Optional[str] = None) -> User:
    user = User(email=email, name=name or email.split("@")[0].title(), is_active=True)
    db.add(user)
    await db.commit()
    return user


async def make_company(db: AsyncSession, owner: User, name: str, tax_id: str) -> Company:
    company = Company(name=name, tax_id=tax_id, is_active=True)
    db.add(company)
    await db.flush()
    db.add(CompanyMember(company_id=company.id, user_id=owner.id, role=CompanyRole.OWNER.value))
    await db.commit()
    return company


async def add_member(db: AsyncSession, company: Company, user: User, role: CompanyRole) -> CompanyMember:
    member = CompanyMember(company_id=company.id, user_id=user.id, role=role.value, is_active=True)
    db.add(member)
    await db.commit()
    return member


async def make_product(db: AsyncSession, company: Company, sku: str, default_warranty_months=None) -> Product:
    product = Product(
        company_id=company.id,
        name=f"Product {sku}",
        sku=sku,
        unit_price=Decimal("100.00"),
        default_warranty_months=default_warranty_months,
    )
    db.add(product)
    await db.commit()
    return product


async def make_sale(
    db: AsyncSession,
    company: Company,
    seller: User,
    sale_date: Optional[date] = None,
    warranty_months: Optional[int] = 12,
    items: int = 1,
    customer_name: str = "Ana Lopez",
    serials: Optional[List[str]] = None,
):
    """Record a sale through the real service; one warranty per item."""
    data = SaleCreate(
        customer_name=customer_name,
        sale_date=sale_date,
        warranty_months=warranty_months,
        items=[
            SaleItemCreate(
                product_name=f"Laptop {i + 1}",
                unit_price=Decimal("500.00"),
                serial_number=serials[i] if serials else None,
            )
            for i in range(items)
        ],
    )
    sale = await SaleService(db).create_sale(company.id, seller.id, data)
    await db.commit()
    return sale


def auth_headers(user: User, company: Optional[Company] = None, header: bool = True) -> dict:
    """Bearer token for user; company goes in X-Company-ID (or only in the token claim)."""
    claims = {"company_id": str(company.id)} if company is not None else None
    headers = {"Authorization": f"Bearer {create_access_token(user.id, additional_claims=claims)}"}
    if company is not None and header:
        headers["X-Company-ID"] = str(company.id)
    return headers


@pytest.fixture
async def world(db):
    """
    Company A with one user per role, company B with its own owner.
    """
    owner = await make_user(db, "owner@a.example.com", "Owner A")
    admin = await make_user(db, "admin@a.example.com", "Admin A")
    seller = await make_user(db, "seller@a.example.com", "Seller A")
    inventory = await make_user(db, "inventory@a.example.com", "Inventory A")
    owner_b = await make_user(db, "owner@b.example.com", "Owner B")

    company_a = await make_company(db, owner, "Company A", "RUC-A")
    company_b = await make_company(db, owner_b, "Company B", "RUC-B")
    await add_member(db, company_a, admin, CompanyRole.ADMIN)
    await add_member(db, company_a, seller, CompanyRole.SELLER)
    await add_member(db, company_a, inventory, CompanyRole.INVENTORY)

    return SimpleNamespace(
        owner=owner,
        admin=admin,
        seller=seller,
        inventory=inventory,
        owner_b=owner_b,
        company_a=company_a,
        company_b=company_b,
    )
