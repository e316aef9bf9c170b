import os
import sys
import uuid
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# read by config.ENV when the app modules are imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-key")
os.environ.setdefault("VISITOR_TOKEN_SECRET", "test-visitor-secret")

from api.models import Base, Order, OrderStatus, PaymentStatus, Product  # noqa: E402
from services.affiliate import AffiliateService  # noqa: E402


class RecordingFeed:
    """Stands in for ChangeFeed; keeps what would have gone to Redis."""

    def __init__(self):
        self.events = []

    async def publish(self, collection, doc_id, data, op="upsert"):
        self.events.append({"collection": collection, "id": str(doc_id), "op": op, "data": data})

    def collections(self):
        return [event["collection"] for event in self.events]


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def feed():
    return RecordingFeed()


@pytest_asyncio.fixture
async def make_product(session_maker):
    async def _make(name="Matcha Kit", stock=10, variants=None, price=1500):
        async with session_maker() as s:
            product = Product(
                id=uuid.uuid4(),
                name=name,
                price=price,
                stock=stock,
                variants=variants or [],
            )
            s.add(product)
            await s.commit()
            return product
    return _make


@pytest_asyncio.fixture
async def make_order(session_maker):
    counter = {"n": 0}

    async def _make(items, total_price=3000, user_id=None, status=OrderStatus.pending):
        counter["n"] += 1
        async with session_maker() as s:
            order = Order(
                id=uuid.uuid4(),
                user_id=user_id,
                status=status,
                payment_status=PaymentStatus.pending,
                items=items,
                customer_info={"name": "Sato Hana", "email": "hana@example.jp"},
                shipping_fee=0,
                total_price=total_price,
                created_at=datetime.utcnow() + timedelta(seconds=counter["n"]),
                updated_at=datetime.utcnow(),
            )
            s.add(order)
            await s.commit()
            return order
    return _make


@pytest_asyncio.fixture
async def affiliate(session_maker):
    async with session_maker() as s:
        return await AffiliateService(s).join_program("user-aff-0001", "tari@example.com", "Tari")


def line(product, quantity, **extra):
    item = {"product_id": str(product.id), "name": product.name, "quantity": quantity, "price": product.price}
    item.update(extra)
    return item
