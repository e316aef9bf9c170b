import logging
import uuid
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.database.transaction import run_in_transaction
from api.models import (
    AffiliateCommission,
    AffiliatePayout,
    AffiliateReferral,
    AffiliateSettings,
    AffiliateUser,
    CommissionStatus,
    Order,
    PayoutStatus,
    ReferralStatus,
)
from schemas.affiliate import Follower, LedgerBalances, SettingsUpdate
from services.errors import InvalidReferralCodeError, InvalidStateError, NotFoundError
from services.realtime import ChangeFeed, FeedPublisher
from utils.referral import RefLink

SETTINGS_ID = "default"
DEFAULT_SETTINGS = {
    "default_commission_rate": Decimal("5"),
    "min_payout_amount": 5000,
    "payout_methods": ["Bank Transfer"],
    "terms_and_conditions": "Default terms and conditions for the affiliate program.",
}

FOLLOWER_STATUSES = (
    ReferralStatus.registered,
    ReferralStatus.ordered,
    ReferralStatus.approved,
    ReferralStatus.purchased,
)


def calculate_commission(order_total: int, rate: Decimal | int | float) -> int:
    """floor(order_total * rate / 100), computed in decimal so 2.5 % stays exact."""
    amount = Decimal(order_total) * Decimal(str(rate)) / Decimal(100)
    return int(amount.to_integral_value(rounding=ROUND_FLOOR))


async def load_settings(session: AsyncSession) -> AffiliateSettings:
    settings = await session.get(AffiliateSettings, SETTINGS_ID)
    if settings is None:
        now = datetime.utcnow()
        settings = AffiliateSettings(id=SETTINGS_ID, created_at=now, updated_at=now, **DEFAULT_SETTINGS)
        session.add(settings)
        await session.flush()
    return settings


class AffiliateService:
    def __init__(self, session: AsyncSession, feed: Optional[ChangeFeed] = None, publisher: Optional[FeedPublisher] = None):
        self.session = session
        self.publisher = publisher or FeedPublisher(feed)
        self.ref_utils = RefLink()

    # --- settings ---

    async def initialize_settings(self) -> AffiliateSettings:
        async def work(session: AsyncSession) -> AffiliateSettings:
            return await load_settings(session)

        try:
            return await run_in_transaction(self.session, work)
        except IntegrityError:
            # another worker created the row first
            return await self.session.get(AffiliateSettings, SETTINGS_ID)

    async def get_settings(self) -> AffiliateSettings:
        return await self.initialize_settings()

    async def update_settings(self, dto: SettingsUpdate) -> AffiliateSettings:
        async def work(session: AsyncSession) -> AffiliateSettings:
            self.publisher.reset()
            settings = await load_settings(session)
            for field, value in dto.model_dump(exclude_none=True).items():
                setattr(settings, field, value)
            settings.updated_at = datetime.utcnow()
            self.publisher.touch("affiliate_settings", settings)
            return settings

        settings = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        logging.info(f"Affiliate settings updated: rate={settings.default_commission_rate}% min_payout={settings.min_payout_amount}")
        return settings

    # --- affiliates ---

    async def _unique_referral_code(self, user_id: str, display_name: str) -> str:
        while True:
            code = self.ref_utils.generate_ref_code(user_id, display_name)
            exists = await self.session.scalar(select(AffiliateUser.user_id).where(AffiliateUser.referral_code == code))
            if not exists:
                return code

    async def join_program(self, user_id: str, email: str, display_name: str) -> AffiliateUser:
        """
        Enrols a user in the affiliate program, or refreshes the contact
        details of an existing affiliate. Counters start at zero.
        """
        async def work(session: AsyncSession) -> AffiliateUser:
            self.publisher.reset()
            now = datetime.utcnow()
            affiliate = await session.get(AffiliateUser, user_id)
            if affiliate:
                affiliate.email = email
                affiliate.display_name = display_name
                affiliate.updated_at = now
            else:
                affiliate = AffiliateUser(
                    user_id=user_id,
                    email=email,
                    display_name=display_name,
                    referral_code=await self._unique_referral_code(user_id, display_name),
                    total_clicks=0,
                    total_referrals=0,
                    total_commission=0,
                    pending_commission=0,
                    paid_commission=0,
                    created_at=now,
                    updated_at=now,
                )
                session.add(affiliate)
                logging.info(f"New affiliate {user_id} with code {affiliate.referral_code}")
            self.publisher.touch("affiliates", affiliate)
            return affiliate

        affiliate = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        return affiliate

    async def get_affiliate(self, user_id: str) -> AffiliateUser:
        affiliate = await self.session.get(AffiliateUser, user_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {user_id} not found")
        return affiliate

    async def get_by_referral_code(self, referral_code: str) -> AffiliateUser | None:
        return await self.session.scalar(select(AffiliateUser).where(AffiliateUser.referral_code == referral_code))

    async def _require_referral_code(self, referral_code: str) -> AffiliateUser:
        affiliate = await self.get_by_referral_code(referral_code)
        if not affiliate:
            logging.warning(f"Invalid referral code: {referral_code}")
            raise InvalidReferralCodeError(f"Invalid referral code {referral_code}")
        return affiliate

    async def list_affiliates(self) -> list[AffiliateUser]:
        result = await self.session.execute(select(AffiliateUser).order_by(AffiliateUser.created_at.desc()))
        return list(result.scalars().all())

    async def update_bank_info(self, user_id: str, bank_info: dict) -> AffiliateUser:
        async def work(session: AsyncSession) -> AffiliateUser:
            self.publisher.reset()
            affiliate = await self.get_affiliate(user_id)
            affiliate.bank_info = dict(bank_info)
            affiliate.updated_at = datetime.utcnow()
            self.publisher.touch("affiliates", affiliate)
            return affiliate

        affiliate = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        return affiliate

    # --- funnel: click -> registration -> order ---

    async def _find_click(self, referral_code: str, visitor_id: str) -> AffiliateReferral | None:
        return await self.session.scalar(
            select(AffiliateReferral).where(
                AffiliateReferral.referral_code == referral_code,
                AffiliateReferral.visitor_id == visitor_id,
            )
        )

    async def track_click(self, referral_code: str, visitor_id: str) -> AffiliateReferral:
        """
        Records the first visit of ``visitor_id`` through ``referral_code``.
        Repeat visits return the existing record and do not count again.
        """
        async def work(session: AsyncSession) -> AffiliateReferral:
            self.publisher.reset()
            affiliate = await self._require_referral_code(referral_code)
            existing = await self._find_click(referral_code, visitor_id)
            if existing:
                return existing

            now = datetime.utcnow()
            referral = AffiliateReferral(
                id=uuid.uuid4(),
                referral_code=referral_code,
                referrer_id=affiliate.user_id,
                visitor_id=visitor_id,
                status=ReferralStatus.clicked,
                clicked_at=now,
                created_at=now,
                updated_at=now,
            )
            session.add(referral)
            affiliate.total_clicks += 1
            affiliate.updated_at = now
            await session.flush()
            self.publisher.touch("affiliate_referrals", referral)
            self.publisher.touch("affiliates", affiliate)
            return referral

        try:
            referral = await run_in_transaction(self.session, work)
        except IntegrityError:
            # same visitor clicked twice at once; the other request inserted the row
            referral = await self._find_click(referral_code, visitor_id)
            if referral is None:
                raise
            return referral
        await self.publisher.publish()
        return referral

    async def register_with_referral(
        self,
        referral_code: str,
        user_id: str,
        email: str,
        display_name: str,
        visitor_id: Optional[str] = None,
    ) -> AffiliateReferral:
        async def work(session: AsyncSession) -> AffiliateReferral:
            self.publisher.reset()
            affiliate = await self._require_referral_code(referral_code)

            already = await session.scalar(
                select(AffiliateReferral).where(
                    AffiliateReferral.referral_code == referral_code,
                    AffiliateReferral.referred_user_id == user_id,
                )
            )
            if already:
                return already

            referral = None
            if visitor_id:
                referral = await session.scalar(
                    select(AffiliateReferral).where(
                        AffiliateReferral.referral_code == referral_code,
                        AffiliateReferral.visitor_id == visitor_id,
                        AffiliateReferral.status == ReferralStatus.clicked,
                    )
                )
            if referral is None:
                referral = await session.scalar(
                    select(AffiliateReferral)
                    .where(
                        AffiliateReferral.referral_code == referral_code,
                        AffiliateReferral.status == ReferralStatus.clicked,
                    )
                    .order_by(AffiliateReferral.created_at.desc())
                    .limit(1)
                )

            now = datetime.utcnow()
            if referral is None:
                logging.info(f"No click found for code {referral_code}, creating registered referral for {user_id}")
                referral = AffiliateReferral(
                    id=uuid.uuid4(),
                    referral_code=referral_code,
                    referrer_id=affiliate.user_id,
                    status=ReferralStatus.registered,
                    created_at=now,
                )
                session.add(referral)

            referral.referred_user_id = user_id
            referral.referred_user_email = email
            referral.referred_user_name = display_name
            referral.status = ReferralStatus.registered
            referral.registered_at = now
            referral.updated_at = now

            affiliate.total_referrals += 1
            affiliate.updated_at = now
            await session.flush()
            self.publisher.touch("affiliate_referrals", referral)
            self.publisher.touch("affiliates", affiliate)
            return referral

        referral = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        logging.info(f"Registered user {user_id} with referral code {referral_code}")
        return referral

    async def _resolve_attribution(self, order: Order) -> tuple[AffiliateUser, AffiliateReferral | None] | None:
        """
        explicit code -> the user's registered/clicked referral -> the guest's
        clicked referral. None when nothing resolves.
        """
        if order.referral_code:
            affiliate = await self._require_referral_code(order.referral_code)
            referral = None
            if order.user_id:
                referral = await self.session.scalar(
                    select(AffiliateReferral)
                    .where(
                        AffiliateReferral.referral_code == order.referral_code,
                        AffiliateReferral.referred_user_id == order.user_id,
                        AffiliateReferral.status.in_([ReferralStatus.registered, ReferralStatus.clicked]),
                    )
                    .order_by(AffiliateReferral.created_at.desc())
                    .limit(1)
                )
            if referral is None and order.visitor_id:
                referral = await self.session.scalar(
                    select(AffiliateReferral).where(
                        AffiliateReferral.referral_code == order.referral_code,
                        AffiliateReferral.visitor_id == order.visitor_id,
                        AffiliateReferral.status == ReferralStatus.clicked,
                    )
                )
            return affiliate, referral

        referral = None
        if order.user_id:
            referral = await self.session.scalar(
                select(AffiliateReferral)
                .where(
                    AffiliateReferral.referred_user_id == order.user_id,
                    AffiliateReferral.status.in_([ReferralStatus.registered, ReferralStatus.clicked]),
                )
                .order_by(AffiliateReferral.created_at.desc())
                .limit(1)
            )
        if referral is None and order.visitor_id:
            referral = await self.session.scalar(
                select(AffiliateReferral)
                .where(
                    AffiliateReferral.visitor_id == order.visitor_id,
                    AffiliateReferral.status == ReferralStatus.clicked,
                )
                .order_by(AffiliateReferral.created_at.desc())
                .limit(1)
            )
        if referral is None:
            return None
        affiliate = await self.session.get(AffiliateUser, referral.referrer_id)
        return affiliate, referral

    async def _already_counted(self, affiliate_id: str, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        count = await self.session.scalar(
            select(func.count(AffiliateReferral.id)).where(
                AffiliateReferral.referrer_id == affiliate_id,
                AffiliateReferral.referred_user_id == user_id,
                AffiliateReferral.status != ReferralStatus.clicked,
            )
        )
        return bool(count)

    async def attribute_order(self, order: Order) -> AffiliateCommission | None:
        """
        Creates the pending commission for a freshly placed order and moves
        the referral to ``ordered``. Runs inside the caller's transaction;
        returns None when the order is not attributable.
        """
        resolved = await self._resolve_attribution(order)
        if resolved is None:
            logging.info(f"No referral found for order {order.id}")
            return None
        affiliate, referral = resolved

        settings = await load_settings(self.session)
        rate = settings.default_commission_rate
        amount = calculate_commission(order.total_price, rate)
        counted = await self._already_counted(affiliate.user_id, order.user_id)

        now = datetime.utcnow()
        customer = order.customer_info or {}
        if referral is None:
            referral = AffiliateReferral(
                id=uuid.uuid4(),
                referral_code=affiliate.referral_code,
                referrer_id=affiliate.user_id,
                status=ReferralStatus.ordered,
                created_at=now,
            )
            self.session.add(referral)

        referral.status = ReferralStatus.ordered
        referral.order_id = order.id
        referral.order_total = order.total_price
        referral.commission_amount = amount
        referral.referred_user_id = order.user_id or referral.referred_user_id
        referral.referred_user_email = customer.get("email") or referral.referred_user_email
        referral.referred_user_name = customer.get("name") or referral.referred_user_name
        referral.ordered_at = now
        referral.updated_at = now

        commission = AffiliateCommission(
            id=uuid.uuid4(),
            affiliate_id=affiliate.user_id,
            referral_id=referral.id,
            order_id=order.id,
            order_total=order.total_price,
            commission_rate=rate,
            commission_amount=amount,
            status=CommissionStatus.pending,
            created_at=now,
            updated_at=now,
        )
        self.session.add(commission)

        affiliate.total_commission += amount
        affiliate.pending_commission += amount
        if not counted:
            affiliate.total_referrals += 1
        affiliate.updated_at = now

        order.affiliate_id = affiliate.user_id
        order.referral_code = affiliate.referral_code

        await self.session.flush()
        self.publisher.touch("affiliate_referrals", referral)
        self.publisher.touch("affiliate_commissions", commission)
        self.publisher.touch("affiliates", affiliate)
        logging.info(f"Order {order.id} attributed to {affiliate.user_id}: commission {amount} at {rate}%")
        return commission

    # --- commissions ---

    async def _get_commission(self, commission_id: uuid.UUID) -> AffiliateCommission:
        commission = await self.session.get(AffiliateCommission, commission_id)
        if not commission:
            raise NotFoundError(f"Commission {commission_id} not found")
        return commission

    async def approve_commission(self, commission_id: uuid.UUID, admin_id: str) -> AffiliateCommission:
        """
        pending -> approved. Balances stay as they are: pending_commission
        already means "available for payout".
        """
        async def work(session: AsyncSession) -> AffiliateCommission:
            self.publisher.reset()
            commission = await self._get_commission(commission_id)
            if commission.status != CommissionStatus.pending:
                raise InvalidStateError(f"Cannot approve commission with status {commission.status.value}")

            now = datetime.utcnow()
            commission.status = CommissionStatus.approved
            commission.approved_at = now
            commission.approved_by = admin_id
            commission.updated_at = now
            self.publisher.touch("affiliate_commissions", commission)

            if commission.referral_id:
                referral = await session.get(AffiliateReferral, commission.referral_id)
                if referral:
                    referral.status = ReferralStatus.approved
                    referral.approved_at = now
                    referral.approved_by = admin_id
                    referral.updated_at = now
                    self.publisher.touch("affiliate_referrals", referral)
            return commission

        commission = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        logging.info(f"Commission {commission_id} approved by {admin_id}")
        return commission

    async def reject_commission(self, commission_id: uuid.UUID, admin_id: str, reason: str) -> AffiliateCommission:
        async def work(session: AsyncSession) -> AffiliateCommission:
            self.publisher.reset()
            commission = await self._get_commission(commission_id)
            if commission.status != CommissionStatus.pending:
                raise InvalidStateError(f"Cannot reject commission with status {commission.status.value}")

            now = datetime.utcnow()
            commission.status = CommissionStatus.rejected
            commission.rejected_at = now
            commission.rejected_by = admin_id
            commission.notes = reason
            commission.updated_at = now
            self.publisher.touch("affiliate_commissions", commission)

            if commission.referral_id:
                referral = await session.get(AffiliateReferral, commission.referral_id)
                if referral:
                    referral.status = ReferralStatus.rejected
                    referral.rejected_at = now
                    referral.rejected_by = admin_id
                    referral.updated_at = now
                    self.publisher.touch("affiliate_referrals", referral)

            affiliate = await self.get_affiliate(commission.affiliate_id)
            affiliate.pending_commission -= commission.commission_amount
            affiliate.updated_at = now
            self.publisher.touch("affiliates", affiliate)
            return commission

        commission = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        logging.info(f"Commission {commission_id} rejected by {admin_id}: {reason}")
        return commission

    # --- listings ---

    async def list_referrals(self, affiliate_id: str) -> list[AffiliateReferral]:
        result = await self.session.execute(
            select(AffiliateReferral)
            .where(AffiliateReferral.referrer_id == affiliate_id)
            .order_by(AffiliateReferral.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_commissions(
        self,
        affiliate_id: Optional[str] = None,
        status: Optional[CommissionStatus] = None,
    ) -> list[AffiliateCommission]:
        stmt = select(AffiliateCommission).order_by(AffiliateCommission.created_at.desc())
        if affiliate_id:
            stmt = stmt.where(AffiliateCommission.affiliate_id == affiliate_id)
        if status:
            stmt = stmt.where(AffiliateCommission.status == status)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_followers(self, affiliate_id: str) -> list[Follower]:
        """Unique referred users of an affiliate, newest first."""
        result = await self.session.execute(
            select(AffiliateReferral)
            .where(
                AffiliateReferral.referrer_id == affiliate_id,
                AffiliateReferral.status.in_(FOLLOWER_STATUSES),
                AffiliateReferral.referred_user_id.is_not(None),
            )
            .order_by(AffiliateReferral.created_at.desc())
        )
        followers: dict[str, Follower] = {}
        for referral in result.scalars().all():
            if referral.referred_user_id in followers:
                continue
            email = referral.referred_user_email or ""
            followers[referral.referred_user_id] = Follower(
                id=referral.id,
                affiliate_id=affiliate_id,
                user_id=referral.referred_user_id,
                email=email,
                display_name=referral.referred_user_name or email.split("@")[0],
                total_orders=1 if referral.order_id else 0,
                total_spent=referral.order_total or 0,
                first_order_date=referral.ordered_at,
                last_order_date=referral.ordered_at,
                created_at=referral.created_at,
            )
        return list(followers.values())

    # --- ledger ---

    async def compute_balances(self, affiliate_id: str) -> LedgerBalances:
        """Counters as the commission and payout ledger says they should be."""
        total = await self.session.scalar(
            select(func.coalesce(func.sum(AffiliateCommission.commission_amount), 0))
            .where(AffiliateCommission.affiliate_id == affiliate_id)
        )
        rejected = await self.session.scalar(
            select(func.coalesce(func.sum(AffiliateCommission.commission_amount), 0))
            .where(
                AffiliateCommission.affiliate_id == affiliate_id,
                AffiliateCommission.status == CommissionStatus.rejected,
            )
        )
        earmarked = await self.session.scalar(
            select(func.coalesce(func.sum(AffiliatePayout.amount), 0))
            .where(
                AffiliatePayout.affiliate_id == affiliate_id,
                AffiliatePayout.status.in_([PayoutStatus.pending, PayoutStatus.processing, PayoutStatus.completed]),
            )
        )
        paid = await self.session.scalar(
            select(func.coalesce(func.sum(AffiliatePayout.amount), 0))
            .where(
                AffiliatePayout.affiliate_id == affiliate_id,
                AffiliatePayout.status == PayoutStatus.completed,
            )
        )
        return LedgerBalances(
            total_commission=total,
            pending_commission=total - rejected - earmarked,
            paid_commission=paid,
        )

    async def reconcile(self, affiliate_id: str) -> bool:
        """Rewrites drifted counters from the ledger. True when something changed."""
        async def work(session: AsyncSession) -> bool:
            self.publisher.reset()
            affiliate = await self.get_affiliate(affiliate_id)
            balances = await self.compute_balances(affiliate_id)
            drifted = False
            for field, expected in balances.model_dump().items():
                actual = getattr(affiliate, field)
                if actual != expected:
                    logging.warning(f"Affiliate {affiliate_id} {field} drifted: stored {actual}, ledger {expected}")
                    setattr(affiliate, field, expected)
                    drifted = True
            if drifted:
                affiliate.updated_at = datetime.utcnow()
                self.publisher.touch("affiliates", affiliate)
            return drifted

        drifted = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        return drifted

    async def list_affiliate_ids(self) -> list[str]:
        result = await self.session.execute(select(AffiliateUser.user_id))
        return list(result.scalars().all())
