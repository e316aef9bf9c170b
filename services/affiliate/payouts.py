import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.database.transaction import run_in_transaction
from api.models import (
    AffiliateCommission,
    AffiliatePayout,
    AffiliateReferral,
    AffiliateUser,
    CommissionStatus,
    PayoutStatus,
    ReferralStatus,
)
from schemas.affiliate import PayoutRequestCreate
from services.errors import (
    BelowMinimumPayoutError,
    InsufficientCommissionError,
    InvalidStateError,
    NotFoundError,
)
from services.realtime import ChangeFeed, FeedPublisher

from .service import load_settings

# target status -> statuses it may be reached from
TRANSITIONS = {
    PayoutStatus.processing: (PayoutStatus.pending,),
    PayoutStatus.completed: (PayoutStatus.processing,),
    PayoutStatus.rejected: (PayoutStatus.pending, PayoutStatus.processing),
}


class PayoutService:
    def __init__(self, session: AsyncSession, feed: Optional[ChangeFeed] = None, publisher: Optional[FeedPublisher] = None):
        self.session = session
        self.publisher = publisher or FeedPublisher(feed)

    async def _get_affiliate(self, affiliate_id: str) -> AffiliateUser:
        affiliate = await self.session.get(AffiliateUser, affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")
        return affiliate

    async def request_payout(self, affiliate_id: str, dto: PayoutRequestCreate) -> AffiliatePayout:
        """
        Earmarks ``dto.amount`` of the available balance. The amount leaves
        pending_commission right away and comes back only if the payout is
        rejected.
        """
        async def work(session: AsyncSession) -> AffiliatePayout:
            self.publisher.reset()
            settings = await load_settings(session)
            if dto.amount < settings.min_payout_amount:
                raise BelowMinimumPayoutError(f"Minimum payout amount is {settings.min_payout_amount}")

            affiliate = await self._get_affiliate(affiliate_id)
            if dto.amount > affiliate.pending_commission:
                raise InsufficientCommissionError(
                    f"Insufficient commission balance: available {affiliate.pending_commission}, requested {dto.amount}"
                )

            now = datetime.utcnow()
            bank_info = dto.bank_info.model_dump() if dto.bank_info else affiliate.bank_info
            payout = AffiliatePayout(
                id=uuid.uuid4(),
                affiliate_id=affiliate_id,
                amount=dto.amount,
                method=dto.method,
                status=PayoutStatus.pending,
                bank_info=bank_info,
                requested_at=now,
                updated_at=now,
            )
            session.add(payout)
            affiliate.pending_commission -= dto.amount
            affiliate.updated_at = now
            await session.flush()
            self.publisher.touch("affiliate_payouts", payout)
            self.publisher.touch("affiliates", affiliate)
            return payout

        payout = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        logging.info(f"Payout {payout.id} requested by {affiliate_id}: {payout.amount} via {payout.method}")
        return payout

    async def _settle_commissions(self, payout: AffiliatePayout, now: datetime) -> None:
        """Marks the oldest approved commissions that fit into the payout as paid."""
        result = await self.session.execute(
            select(AffiliateCommission)
            .where(
                AffiliateCommission.affiliate_id == payout.affiliate_id,
                AffiliateCommission.status == CommissionStatus.approved,
            )
            .order_by(AffiliateCommission.created_at.asc())
        )
        remaining = payout.amount
        for commission in result.scalars().all():
            if commission.commission_amount > remaining:
                break
            remaining -= commission.commission_amount
            commission.status = CommissionStatus.paid
            commission.paid_at = now
            commission.payout_id = payout.id
            commission.updated_at = now
            self.publisher.touch("affiliate_commissions", commission)

            if commission.referral_id:
                referral = await self.session.get(AffiliateReferral, commission.referral_id)
                if referral:
                    referral.status = ReferralStatus.paid
                    referral.paid_at = now
                    referral.updated_at = now
                    self.publisher.touch("affiliate_referrals", referral)

    async def process_payout(
        self,
        payout_id: uuid.UUID,
        status: PayoutStatus,
        admin_id: str,
        notes: Optional[str] = None,
    ) -> AffiliatePayout:
        async def work(session: AsyncSession) -> AffiliatePayout:
            self.publisher.reset()
            payout = await session.get(AffiliatePayout, payout_id)
            if not payout:
                raise NotFoundError(f"Payout {payout_id} not found")
            if payout.status not in TRANSITIONS.get(status, ()):
                raise InvalidStateError(f"Cannot move payout from {payout.status.value} to {status.value}")

            now = datetime.utcnow()
            affiliate = await self._get_affiliate(payout.affiliate_id)
            payout.status = status
            payout.updated_at = now
            if notes is not None:
                payout.notes = notes

            if status == PayoutStatus.processing:
                payout.processed_at = now
                payout.processed_by = admin_id
            elif status == PayoutStatus.completed:
                payout.completed_at = now
                payout.completed_by = admin_id
                affiliate.paid_commission += payout.amount
                affiliate.updated_at = now
                await self._settle_commissions(payout, now)
            else:
                payout.rejected_at = now
                payout.rejected_by = admin_id
                affiliate.pending_commission += payout.amount
                affiliate.updated_at = now

            self.publisher.touch("affiliate_payouts", payout)
            self.publisher.touch("affiliates", affiliate)
            return payout

        payout = await run_in_transaction(self.session, work)
        await self.publisher.publish()
        logging.info(f"Payout {payout_id} moved to {status.value} by {admin_id}")
        return payout

    async def list_payouts(
        self,
        affiliate_id: Optional[str] = None,
        status: Optional[PayoutStatus] = None,
    ) -> list[AffiliatePayout]:
        stmt = select(AffiliatePayout).order_by(AffiliatePayout.requested_at.desc())
        if affiliate_id:
            stmt = stmt.where(AffiliatePayout.affiliate_id == affiliate_id)
        if status:
            stmt = stmt.where(AffiliatePayout.status == status)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
