import uuid

import pytest
from sqlalchemy import select

from api.models import (
    AffiliateCommission,
    AffiliateReferral,
    AffiliateUser,
    CommissionStatus,
    PayoutStatus,
    ReferralStatus,
)
from schemas import BankInfo, PayoutRequestCreate, SettingsUpdate
from services.affiliate import AffiliateService, PayoutService
from services.errors import BelowMinimumPayoutError, InsufficientCommissionError, InvalidStateError, NotFoundError
from services.orders import OrderService
from test_affiliate_funnel import _order_dto

BANK = BankInfo(bank_name="Bank Mandiri", account_number="1234567890", account_name="Tari")


async def _earn(session_maker, affiliate, totals, approve=True):
    """Places one attributed order per total and optionally approves the commissions."""
    async with session_maker() as s:
        orders = OrderService(s)
        service = AffiliateService(s)
        commissions = []
        for total in totals:
            order = await orders.create_order(_order_dto(total, referral_code=affiliate.referral_code))
            commission = await s.scalar(select(AffiliateCommission).where(AffiliateCommission.order_id == order.id))
            if approve:
                commission = await service.approve_commission(commission.id, "admin-1")
            commissions.append(commission)
        return commissions


async def _affiliate(session_maker, user_id):
    async with session_maker() as s:
        return await s.get(AffiliateUser, user_id)


@pytest.mark.asyncio
async def test_payout_bounds(session_maker, affiliate):
    # 5 % of 200000 = 10000 available, minimum 5000
    await _earn(session_maker, affiliate, [200000])

    async with session_maker() as s:
        service = PayoutService(s)
        with pytest.raises(BelowMinimumPayoutError):
            await service.request_payout(affiliate.user_id, PayoutRequestCreate(amount=4999, method="Bank Transfer"))
        with pytest.raises(InsufficientCommissionError):
            await service.request_payout(affiliate.user_id, PayoutRequestCreate(amount=10001, method="Bank Transfer"))
        payout = await service.request_payout(
            affiliate.user_id, PayoutRequestCreate(amount=10000, method="Bank Transfer", bank_info=BANK)
        )

    assert payout.status == PayoutStatus.pending
    assert payout.bank_info["bank_name"] == "Bank Mandiri"
    assert (await _affiliate(session_maker, affiliate.user_id)).pending_commission == 0


@pytest.mark.asyncio
async def test_minimum_payout_follows_settings(session_maker, affiliate):
    await _earn(session_maker, affiliate, [20000])

    async with session_maker() as s:
        await AffiliateService(s).update_settings(SettingsUpdate(min_payout_amount=500))
        payout = await PayoutService(s).request_payout(affiliate.user_id, PayoutRequestCreate(amount=500, method="Bank Transfer"))
    assert payout.amount == 500


@pytest.mark.asyncio
async def test_payout_defaults_to_stored_bank_info(session_maker, affiliate):
    await _earn(session_maker, affiliate, [200000])

    async with session_maker() as s:
        await AffiliateService(s).update_bank_info(affiliate.user_id, BANK.model_dump())
        payout = await PayoutService(s).request_payout(affiliate.user_id, PayoutRequestCreate(amount=6000, method="Bank Transfer"))
    assert payout.bank_info == BANK.model_dump()


@pytest.mark.asyncio
async def test_rejecting_processing_payout_restores_balance(session_maker, affiliate, feed):
    await _earn(session_maker, affiliate, [200000])

    async with session_maker() as s:
        service = PayoutService(s, feed)
        payout = await service.request_payout(affiliate.user_id, PayoutRequestCreate(amount=8000, method="Bank Transfer"))
        await service.process_payout(payout.id, PayoutStatus.processing, "admin-1")
        rejected = await service.process_payout(payout.id, PayoutStatus.rejected, "admin-1", notes="Wrong account")
        with pytest.raises(InvalidStateError):
            await service.process_payout(payout.id, PayoutStatus.completed, "admin-1")

    assert rejected.rejected_by == "admin-1"
    assert rejected.notes == "Wrong account"
    stored = await _affiliate(session_maker, affiliate.user_id)
    assert (stored.pending_commission, stored.paid_commission) == (10000, 0)
    assert "affiliate_payouts" in feed.collections()


@pytest.mark.asyncio
async def test_pending_payout_can_be_rejected(session_maker, affiliate):
    await _earn(session_maker, affiliate, [200000])

    async with session_maker() as s:
        service = PayoutService(s)
        payout = await service.request_payout(affiliate.user_id, PayoutRequestCreate(amount=6000, method="Bank Transfer"))
        await service.process_payout(payout.id, PayoutStatus.rejected, "admin-1")

    assert (await _affiliate(session_maker, affiliate.user_id)).pending_commission == 10000


@pytest.mark.asyncio
async def test_rejecting_commission_behind_pending_payout_overdraws_balance(session_maker, affiliate):
    # the payout already set the amount aside; rejection takes it out again
    [commission] = await _earn(session_maker, affiliate, [200000], approve=False)

    async with session_maker() as s:
        await PayoutService(s).request_payout(affiliate.user_id, PayoutRequestCreate(amount=10000, method="Bank Transfer"))
        await AffiliateService(s).reject_commission(commission.id, "admin-1", "order returned")

    assert (await _affiliate(session_maker, affiliate.user_id)).pending_commission == -10000

    async with session_maker() as s:
        with pytest.raises(InsufficientCommissionError):
            await PayoutService(s).request_payout(affiliate.user_id, PayoutRequestCreate(amount=5000, method="Bank Transfer"))


@pytest.mark.asyncio
async def test_completing_payout_settles_oldest_commissions(session_maker, affiliate):
    # commissions of 3000, 4000 and 5000
    first, second, third = await _earn(session_maker, affiliate, [60000, 80000, 100000])

    async with session_maker() as s:
        service = PayoutService(s)
        payout = await service.request_payout(affiliate.user_id, PayoutRequestCreate(amount=8000, method="Bank Transfer"))
        with pytest.raises(InvalidStateError):
            await service.process_payout(payout.id, PayoutStatus.completed, "admin-1")
        await service.process_payout(payout.id, PayoutStatus.processing, "admin-1")
        completed = await service.process_payout(payout.id, PayoutStatus.completed, "admin-2")

    assert completed.completed_by == "admin-2"
    async with session_maker() as s:
        settled = [await s.get(AffiliateCommission, c.id) for c in (first, second, third)]
        referral = await s.get(AffiliateReferral, first.referral_id)
    assert [c.status for c in settled] == [CommissionStatus.paid, CommissionStatus.paid, CommissionStatus.approved]
    assert settled[0].payout_id == payout.id
    assert referral.status == ReferralStatus.paid

    stored = await _affiliate(session_maker, affiliate.user_id)
    assert (stored.total_commission, stored.pending_commission, stored.paid_commission) == (12000, 4000, 8000)


@pytest.mark.asyncio
async def test_terminal_payouts_cannot_move(session_maker, affiliate):
    await _earn(session_maker, affiliate, [200000])

    async with session_maker() as s:
        service = PayoutService(s)
        payout = await service.request_payout(affiliate.user_id, PayoutRequestCreate(amount=6000, method="Bank Transfer"))
        await service.process_payout(payout.id, PayoutStatus.processing, "admin-1")
        await service.process_payout(payout.id, PayoutStatus.completed, "admin-1")
        for target in (PayoutStatus.rejected, PayoutStatus.processing, PayoutStatus.completed):
            with pytest.raises(InvalidStateError):
                await service.process_payout(payout.id, target, "admin-1")
        with pytest.raises(NotFoundError):
            await service.process_payout(uuid.uuid4(), PayoutStatus.processing, "admin-1")

    stored = await _affiliate(session_maker, affiliate.user_id)
    assert (stored.pending_commission, stored.paid_commission) == (4000, 6000)


@pytest.mark.asyncio
async def test_list_payouts_filters(session_maker, affiliate):
    await _earn(session_maker, affiliate, [200000])

    async with session_maker() as s:
        service = PayoutService(s)
        first = await service.request_payout(affiliate.user_id, PayoutRequestCreate(amount=5000, method="Bank Transfer"))
        await service.request_payout(affiliate.user_id, PayoutRequestCreate(amount=5000, method="Bank Transfer"))
        await service.process_payout(first.id, PayoutStatus.processing, "admin-1")

        assert len(await service.list_payouts(affiliate_id=affiliate.user_id)) == 2
        processing = await service.list_payouts(status=PayoutStatus.processing)
    assert [p.id for p in processing] == [first.id]
