# tests/conftest.py

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./lead_qualifier_test.db")
os.environ.setdefault("WEBHOOK_SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import lead_qualifier.models  # noqa: F401
from lead_qualifier.models.criterion import ICPCriterion, CriterionDataType
from lead_qualifier.models.lead import Lead
from lead_qualifier.models.webhook import Webhook, WebhookEvent
from lead_qualifier.services.integrations.enrichment import NullEnrichmentProvider
from lead_qualifier.services import training_service


class FakeClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, now: datetime = None):
        self.now = now or datetime(2026, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def reset_training_registry():
    training_service._training_tasks.clear()
    yield
    training_service._training_tasks.clear()


@pytest.fixture
def org_id():
    return uuid.uuid4()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def null_enrichment():
    return NullEnrichmentProvider()


@pytest_asyncio.fixture
async def criteria(session, org_id):
    """Budget (weight 8) and industry (weight 2), as in the settings UI defaults."""
    rows = [
        ICPCriterion(
            org_id=org_id, name="Budget", data_type=CriterionDataType.BUDGET,
            weight=8, ideal_values=["$50k+"], sort_order=0,
        ),
        ICPCriterion(
            org_id=org_id, name="Industry", data_type=CriterionDataType.INDUSTRY,
            weight=2, ideal_values=["SaaS", "Fintech"], sort_order=1,
        ),
    ]
    for row in rows:
        session.add(row)
    await session.commit()
    return rows


@pytest_asyncio.fixture
async def lead(session, org_id):
    lead = Lead(
        org_id=org_id,
        email="dana@acme.io",
        first_name="Dana",
        last_name="Reyes",
        job_title="VP of Sales",
        company_name="Acme",
        company_size="51-200",
        industry="SaaS",
        budget_range="$75,000",
        timeline="within 3 months",
    )
    session.add(lead)
    await session.commit()
    return lead


@pytest_asyncio.fixture
async def webhook(session, org_id):
    webhook = Webhook(
        org_id=org_id,
        name="CRM",
        url="https://crm.example.com/hooks/leads",
        secret="whsec_test",
        events=[WebhookEvent.LEAD_QUALIFIED],
    )
    session.add(webhook)
    await session.commit()
    return webhook
