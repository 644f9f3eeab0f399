from decimal import Decimal
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardswap.db.database import get_session
from cardswap.db.operations import create_address, create_card, create_match
from cardswap.gateway.client import get_shipping_gateway
from cardswap.main import app
from cardswap.models.db import Base
from cardswap.models.failure import GatewayError
from cardswap.models.match import Match
from cardswap.models.shipping import (
    ParcelSpec,
    PostalAddress,
    PurchasedLabel,
    RateQuote,
    TrackingStatus,
)
from cardswap.services.rate_sessions import get_rate_sessions

ALICE = "alice"
BOB = "bob"


@pytest.fixture(autouse=True)
def clear_rate_sessions():
    """Rate sessions are process-wide; start every test without any."""
    get_rate_sessions().clear()
    yield
    get_rate_sessions().clear()


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def session(async_engine) -> AsyncSession:
    """Provide a database session for tests."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


async def seed_match(
    session: AsyncSession,
    match_id: str = "m1",
    user1: str = ALICE,
    user2: str = BOB,
    bundle: bool = False,
) -> Match:
    """Create both users' cards and a match pairing them."""
    if bundle:
        a_cards = [await create_card(session, user1, f"Card A{i}") for i in range(2)]
        b_cards = [await create_card(session, user2, f"Card B{i}") for i in range(2)]
        match = Match(
            id=match_id,
            user1_id=user1,
            user2_id=user2,
            user1_card_ids=tuple(c.id for c in a_cards),
            user2_card_ids=tuple(c.id for c in b_cards),
            is_bundle=True,
        )
    else:
        a_card = await create_card(session, user1, "Black Lotus", set_name="Alpha")
        b_card = await create_card(session, user2, "Mox Pearl", set_name="Alpha")
        match = Match(
            id=match_id,
            user1_id=user1,
            user2_id=user2,
            user1_card_id=a_card.id,
            user2_card_id=b_card.id,
        )
    await create_match(session, match)
    await session.commit()
    return match


async def seed_address(session: AsyncSession, user_id: str, name: str = "Home", **fields: Any) -> str:
    """Save an address for a user and return its id."""
    values = {
        "address_name": name,
        "street1": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip": "62701",
    }
    values.update(fields)
    is_default = values.pop("is_default", True)
    address = await create_address(session, user_id, is_default=is_default, **values)
    await session.commit()
    return address.id


def make_quote(
    quote_id: str, amount: str, token: str = "usps_ground_advantage", days: int | None = 5
) -> RateQuote:
    return RateQuote(
        id=quote_id,
        amount=Decimal(amount),
        currency="USD",
        provider="USPS",
        service_token=token,
        service_name=token.replace("_", " ").title(),
        estimated_days=days,
    )


class FakeGateway:
    """In-memory shipping gateway recording every call."""

    def __init__(
        self,
        quotes: list[RateQuote] | None = None,
        fail_rates: bool = False,
        fail_purchase: bool = False,
    ) -> None:
        self.quotes = quotes if quotes is not None else [
            make_quote("rate-express", "28.75", "usps_priority_express", 1),
            make_quote("rate-ground", "4.85", "usps_ground_advantage", 5),
            make_quote("rate-priority", "9.20", "usps_priority", 2),
            make_quote("rate-ups", "3.10", "ups_ground", 4),
        ]
        self.fail_rates = fail_rates
        self.fail_purchase = fail_purchase
        self.rate_calls: list[tuple[PostalAddress, PostalAddress, ParcelSpec]] = []
        self.purchases: list[str] = []
        self.tracked: list[tuple[str, str]] = []

    async def get_rates(
        self, from_address: PostalAddress, to_address: PostalAddress, parcel: ParcelSpec
    ) -> list[RateQuote]:
        self.rate_calls.append((from_address, to_address, parcel))
        if self.fail_rates:
            raise GatewayError("rate lookup", "HTTP 503: Service Unavailable")
        return list(self.quotes)

    async def purchase_label(self, quote_id: str, carrier: str | None = None) -> PurchasedLabel:
        self.purchases.append(quote_id)
        if self.fail_purchase:
            raise GatewayError("label purchase", "Insufficient postage balance")
        n = len(self.purchases)
        return PurchasedLabel(
            tracking_number=f"9400TRACK{n}",
            carrier=carrier or "USPS",
            label_url=f"https://labels.example.com/{quote_id}-{n}.pdf",
        )

    async def track(self, carrier: str, tracking_number: str) -> TrackingStatus:
        self.tracked.append((carrier, tracking_number))
        return TrackingStatus(status="TRANSIT", details="In transit", eta="2026-01-05")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
async def client(async_engine, gateway: FakeGateway):
    """Provide an async test client with overridden database session and gateway."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_session():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_shipping_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
