import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.database.transaction import run_in_transaction
from api.models import Order, OrderStatus, PaymentStatus, Product
from schemas.orders import OrderCreate
from services.affiliate.service import AffiliateService
from services.errors import (
    AlreadyConfirmedError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    VariantNotFoundError,
)
from services.realtime import ChangeFeed, FeedPublisher


@dataclass
class StockPlan:
    """Working copy of one product's stock while an order is validated."""
    product: Product
    stock: int
    variants: list[dict]
    variants_touched: bool = False
    base_touched: bool = False


def _variant_target(product: Product, item: dict) -> tuple[Optional[str], Optional[dict]] | None:
    """(name, options) to look the variant up by, or None for base-stock items."""
    if not product.variants:
        return None
    name = item.get("selected_variant_name")
    options = item.get("selected_variants") or None
    if not name and not options:
        return None
    if not name and options:
        name = options.get("variant")
    return name, options


class OrderService:
    def __init__(self, session: AsyncSession, feed: Optional[ChangeFeed] = None):
        self.session = session
        self.publisher = FeedPublisher(feed)
        self.affiliates = AffiliateService(session, publisher=self.publisher)

    async def _get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.session.get(Order, order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def get_order(self, order_id: uuid.UUID) -> Order:
        return await self._get_order(order_id)

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        user_id: Optional[str] = None,
    ) -> list[Order]:
        stmt = select(Order).order_by(Order.created_at.desc())
        if status:
            stmt = stmt.where(Order.status == status)
        if payment_status:
            stmt = stmt.where(Order.payment_status == payment_status)
        if user_id:
            stmt = stmt.where(Order.user_id == user_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_order(self, dto: OrderCreate, visitor_id: Optional[str] = None) -> Order:
        """
        Stores a new pending order and, in the same transaction, credits
        the referring affiliate if one can be resolved. ``visitor_id`` is the
        verified guest identity from the referral-link visit, if any.
        """
        async def work(session: AsyncSession) -> Order:
            self.publisher.reset()
            now = datetime.utcnow()
            order = Order(
                id=uuid.uuid4(),
                user_id=dto.user_id,
                status=OrderStatus.pending,
                payment_status=PaymentStatus.pending,
                items=[item.model_dump(mode="json", exclude_none=True) for item in dto.items],
                customer_info=dto.customer_info.model_dump(exclude_none=True),
                shipping_fee=dto.shipping_fee,
                total_price=dto.total_price,
                payment_proof_url=dto.payment_proof_url,
                visitor_id=visitor_id,
                referral_code=dto.referral_code,
                created_at=now,
                updated_at=now,
            )
            session.add(order)
            await session.flush()
            await self.affiliates.attribute_order(order)
            self.publisher.touch("orders", order)
            return order

        order = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        logging.info(f"Order {order.id} created: total {order.total_price}, affiliate {order.affiliate_id}")
        return order

    async def _plan_stock(self, order: Order) -> dict[uuid.UUID, StockPlan]:
        """
        Read phase of confirmation: loads every product the order touches
        and checks each line against a running working copy, so two lines
        for the same variant compound. Raises before anything is written.
        """
        plans: dict[uuid.UUID, StockPlan] = {}
        for item in order.items or []:
            raw_id = item.get("product_id")
            if not raw_id:
                logging.warning(f"Order {order.id}: item '{item.get('name')}' has no product_id, skipping stock check")
                continue
            try:
                product_id = uuid.UUID(str(raw_id))
            except ValueError:
                raise NotFoundError(f"Product {raw_id} not found") from None

            plan = plans.get(product_id)
            if plan is None:
                product = await self.session.get(Product, product_id)
                if not product:
                    raise NotFoundError(f"Product {product_id} not found")
                plan = StockPlan(
                    product=product,
                    stock=product.stock,
                    variants=[dict(variant) for variant in product.variants or []],
                )
                plans[product_id] = plan

            quantity = int(item.get("quantity", 0))
            target = _variant_target(plan.product, item)
            if target is None:
                if plan.stock < quantity:
                    raise InsufficientStockError(plan.product.name, None, plan.stock, quantity)
                plan.stock -= quantity
                plan.base_touched = True
                continue

            name, options = target
            found = plan.product.find_variant(name=name, options=options)
            if found is None:
                raise VariantNotFoundError(f"Variant {name or options} not found for product {plan.product.name}")
            index, _ = found
            variant = plan.variants[index]
            available = int(variant.get("stock", 0))
            if available < quantity:
                raise InsufficientStockError(plan.product.name, variant.get("name"), available, quantity)
            variant["stock"] = available - quantity
            plan.variants_touched = True
        return plans

    async def confirm_order(self, order_id: uuid.UUID) -> Order:
        """
        Confirms a pending order and takes its items out of stock, all or
        nothing. Runs as an optimistic transaction: a concurrent write to the
        order or any of its products makes the whole block start over.
        """
        async def work(session: AsyncSession) -> Order:
            self.publisher.reset()
            order = await self._get_order(order_id)
            if order.status in (OrderStatus.confirmed, OrderStatus.processing, OrderStatus.completed):
                raise AlreadyConfirmedError(f"Order {order_id} is already confirmed")
            if order.status != OrderStatus.pending:
                raise InvalidStateError(f"Cannot confirm order {order_id} in status {order.status.value}")

            plans = await self._plan_stock(order)

            now = datetime.utcnow()
            for plan in plans.values():
                if plan.base_touched:
                    plan.product.stock = plan.stock
                if plan.variants_touched:
                    plan.product.variants = plan.variants
                plan.product.updated_at = now
                self.publisher.touch("products", plan.product)

            order.status = OrderStatus.confirmed
            order.confirmed_at = now
            order.updated_at = now
            self.publisher.touch("orders", order)
            return order

        order = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        logging.info(f"Order {order_id} confirmed")
        return order

    async def cancel_order(self, order_id: uuid.UUID) -> Order:
        # pending orders reserve nothing, so stock is left alone
        async def work(session: AsyncSession) -> Order:
            self.publisher.reset()
            order = await self._get_order(order_id)
            order.status = OrderStatus.cancelled
            order.updated_at = datetime.utcnow()
            self.publisher.touch("orders", order)
            return order

        order = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        logging.info(f"Order {order_id} cancelled")
        return order

    async def update_order_status(
        self,
        order_id: uuid.UUID,
        status: OrderStatus,
        payment_status: Optional[PaymentStatus] = None,
    ) -> Order:
        if status == OrderStatus.confirmed:
            raise InvalidStateError("Orders are confirmed through the confirmation endpoint")

        async def work(session: AsyncSession) -> Order:
            self.publisher.reset()
            order = await self._get_order(order_id)
            order.status = status
            if payment_status is not None:
                order.payment_status = payment_status
            order.updated_at = datetime.utcnow()
            self.publisher.touch("orders", order)
            return order

        order = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        logging.info(f"Order {order_id} status set to {status.value}")
        return order

    async def update_payment_proof(self, order_id: uuid.UUID, url: str) -> Order:
        async def work(session: AsyncSession) -> Order:
            self.publisher.reset()
            order = await self._get_order(order_id)
            order.payment_proof_url = url
            order.payment_status = PaymentStatus.pending
            order.updated_at = datetime.utcnow()
            self.publisher.touch("orders", order)
            return order

        order = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        return order

    async def list_products(self) -> list[Product]:
        result = await self.session.execute(select(Product).order_by(Product.name.asc()))
        return list(result.scalars().all())
