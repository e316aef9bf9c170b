import uuid

import pytest

from api.models import Order, OrderStatus, Product
from conftest import line
from services.errors import (
    AlreadyConfirmedError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    VariantNotFoundError,
)
from services.orders import OrderService

SIZES = [
    {"name": "Small", "price": 1200, "stock": 5, "options": {"size": "S"}},
    {"name": "Large", "price": 1800, "stock": 2, "options": {"size": "L"}},
]


async def _reload(session_maker, model, pk):
    async with session_maker() as s:
        return await s.get(model, pk)


@pytest.mark.asyncio
async def test_confirm_decrements_base_stock(session_maker, feed, make_product, make_order):
    product = await make_product(stock=10)
    order = await make_order([line(product, 3)])

    async with session_maker() as s:
        confirmed = await OrderService(s, feed).confirm_order(order.id)

    assert confirmed.status == OrderStatus.confirmed
    assert confirmed.confirmed_at is not None
    assert (await _reload(session_maker, Product, product.id)).stock == 7
    assert sorted(feed.collections()) == ["orders", "products"]


@pytest.mark.asyncio
async def test_confirm_decrements_each_product(session_maker, make_product, make_order):
    tea = await make_product(name="Sencha", stock=4)
    cups = await make_product(name="Cup set", stock=1)
    order = await make_order([line(tea, 2), line(cups, 1), line(tea, 2)])

    async with session_maker() as s:
        await OrderService(s).confirm_order(order.id)

    assert (await _reload(session_maker, Product, tea.id)).stock == 0
    assert (await _reload(session_maker, Product, cups.id)).stock == 0


@pytest.mark.asyncio
async def test_confirm_decrements_only_selected_variant(session_maker, make_product, make_order):
    product = await make_product(stock=0, variants=SIZES)
    order = await make_order([line(product, 2, selected_variant_name="Small")])

    async with session_maker() as s:
        await OrderService(s).confirm_order(order.id)

    variants = (await _reload(session_maker, Product, product.id)).variants
    assert [v["stock"] for v in variants] == [3, 2]


@pytest.mark.asyncio
async def test_variant_found_by_options_when_no_name(session_maker, make_product, make_order):
    product = await make_product(stock=0, variants=SIZES)
    order = await make_order([line(product, 1, selected_variants={"size": "L"})])

    async with session_maker() as s:
        await OrderService(s).confirm_order(order.id)

    variants = (await _reload(session_maker, Product, product.id)).variants
    assert variants[1]["stock"] == 1


@pytest.mark.asyncio
async def test_variant_shortage_aborts_without_writes(session_maker, make_product, make_order):
    other = await make_product(name="Whisk", stock=5)
    product = await make_product(stock=0, variants=SIZES)
    order = await make_order([line(other, 1), line(product, 3, selected_variant_name="Large")])

    async with session_maker() as s:
        with pytest.raises(InsufficientStockError) as exc:
            await OrderService(s).confirm_order(order.id)

    assert exc.value.available == 2
    assert exc.value.requested == 3
    assert str(exc.value) == "Not enough stock for Matcha Kit (Large). Available: 2, Requested: 3"
    assert (await _reload(session_maker, Product, other.id)).stock == 5
    assert [v["stock"] for v in (await _reload(session_maker, Product, product.id)).variants] == [5, 2]
    assert (await _reload(session_maker, Order, order.id)).status == OrderStatus.pending


@pytest.mark.asyncio
async def test_lines_for_same_product_compound(session_maker, make_product, make_order):
    product = await make_product(stock=3)
    order = await make_order([line(product, 2), line(product, 2)])

    async with session_maker() as s:
        with pytest.raises(InsufficientStockError) as exc:
            await OrderService(s).confirm_order(order.id)

    assert exc.value.available == 1
    assert (await _reload(session_maker, Product, product.id)).stock == 3


@pytest.mark.asyncio
async def test_unknown_variant(session_maker, make_product, make_order):
    product = await make_product(stock=0, variants=SIZES)
    order = await make_order([line(product, 1, selected_variant_name="Huge")])

    async with session_maker() as s:
        with pytest.raises(VariantNotFoundError):
            await OrderService(s).confirm_order(order.id)


@pytest.mark.asyncio
async def test_missing_product_and_missing_order(session_maker, make_order):
    order = await make_order([{"product_id": str(uuid.uuid4()), "name": "Ghost", "quantity": 1, "price": 100}])

    async with session_maker() as s:
        service = OrderService(s)
        with pytest.raises(NotFoundError):
            await service.confirm_order(order.id)
        with pytest.raises(NotFoundError):
            await service.confirm_order(uuid.uuid4())


@pytest.mark.asyncio
async def test_items_without_product_id_are_skipped(session_maker, make_product, make_order):
    product = await make_product(stock=2)
    order = await make_order([{"name": "Gift wrap", "quantity": 1, "price": 300}, line(product, 1)])

    async with session_maker() as s:
        confirmed = await OrderService(s).confirm_order(order.id)

    assert confirmed.status == OrderStatus.confirmed
    assert (await _reload(session_maker, Product, product.id)).stock == 1


@pytest.mark.asyncio
async def test_confirming_twice_is_refused(session_maker, feed, make_product, make_order):
    product = await make_product(stock=10)
    order = await make_order([line(product, 3)])

    async with session_maker() as s:
        await OrderService(s).confirm_order(order.id)

    feed.events.clear()
    async with session_maker() as s:
        with pytest.raises(AlreadyConfirmedError):
            await OrderService(s, feed).confirm_order(order.id)

    assert (await _reload(session_maker, Product, product.id)).stock == 7
    assert feed.events == []


@pytest.mark.asyncio
async def test_processing_order_cannot_be_confirmed_again(session_maker, make_product, make_order):
    product = await make_product(stock=10)
    order = await make_order([line(product, 3)])

    async with session_maker() as s:
        service = OrderService(s)
        await service.confirm_order(order.id)
        await service.update_order_status(order.id, OrderStatus.processing)

    async with session_maker() as s:
        with pytest.raises(AlreadyConfirmedError):
            await OrderService(s).confirm_order(order.id)

    assert (await _reload(session_maker, Product, product.id)).stock == 7
    assert (await _reload(session_maker, Order, order.id)).status == OrderStatus.processing


@pytest.mark.asyncio
async def test_cancelled_order_cannot_be_confirmed(session_maker, make_product, make_order):
    product = await make_product(stock=4)
    order = await make_order([line(product, 2)])

    async with session_maker() as s:
        await OrderService(s).cancel_order(order.id)

    async with session_maker() as s:
        with pytest.raises(InvalidStateError):
            await OrderService(s).confirm_order(order.id)

    assert (await _reload(session_maker, Product, product.id)).stock == 4


@pytest.mark.asyncio
async def test_concurrent_confirmations_for_last_unit(session_maker, make_product, make_order):
    product = await make_product(stock=0, variants=[{"name": "Large", "price": 1800, "stock": 1, "options": {}}])
    first = await make_order([line(product, 1, selected_variant_name="Large")])
    second = await make_order([line(product, 1, selected_variant_name="Large")])

    async with session_maker() as s:
        service = OrderService(s)
        plan_stock = service._plan_stock
        calls = []

        async def racing_plan(order):
            plans = await plan_stock(order)
            calls.append(order.id)
            if len(calls) == 1:
                # the other admin confirms after our reads, before our write
                async with session_maker() as other:
                    await OrderService(other).confirm_order(second.id)
            return plans

        service._plan_stock = racing_plan
        with pytest.raises(InsufficientStockError):
            await service.confirm_order(first.id)

    assert len(calls) == 2
    assert (await _reload(session_maker, Product, product.id)).variants[0]["stock"] == 0
    assert (await _reload(session_maker, Order, first.id)).status == OrderStatus.pending
    assert (await _reload(session_maker, Order, second.id)).status == OrderStatus.confirmed


@pytest.mark.asyncio
async def test_cancel_leaves_stock_alone(session_maker, make_product, make_order):
    product = await make_product(stock=4)
    order = await make_order([line(product, 2)])

    async with session_maker() as s:
        cancelled = await OrderService(s).cancel_order(order.id)

    assert cancelled.status == OrderStatus.cancelled
    assert (await _reload(session_maker, Product, product.id)).stock == 4


@pytest.mark.asyncio
async def test_status_update_cannot_confirm(session_maker, make_product, make_order):
    product = await make_product(stock=4)
    order = await make_order([line(product, 2)])

    async with session_maker() as s:
        service = OrderService(s)
        with pytest.raises(InvalidStateError):
            await service.update_order_status(order.id, OrderStatus.confirmed)
        updated = await service.update_order_status(order.id, OrderStatus.processing)

    assert updated.status == OrderStatus.processing
    assert (await _reload(session_maker, Product, product.id)).stock == 4
