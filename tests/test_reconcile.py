import pytest
from sqlalchemy import select

from api.models import AffiliateCommission, AffiliateUser, PayoutStatus
from schemas import PayoutRequestCreate
from services.affiliate import AffiliateService, PayoutService
from services.bground.reconciler import reconcile_all_affiliates
from test_payouts import _earn


@pytest.mark.asyncio
async def test_balances_match_counters_after_normal_flow(session_maker, affiliate):
    await _earn(session_maker, affiliate, [60000, 80000])
    await _earn(session_maker, affiliate, [40000], approve=False)

    async with session_maker() as s:
        commission = await s.scalar(select(AffiliateCommission).where(AffiliateCommission.order_total == 40000))
        await AffiliateService(s).reject_commission(commission.id, "admin-1", "fraud")
        payouts = PayoutService(s)
        payout = await payouts.request_payout(affiliate.user_id, PayoutRequestCreate(amount=5000, method="Bank Transfer"))
        await payouts.process_payout(payout.id, PayoutStatus.processing, "admin-1")
        await payouts.process_payout(payout.id, PayoutStatus.completed, "admin-1")

        service = AffiliateService(s)
        balances = await service.compute_balances(affiliate.user_id)
        stored = await s.get(AffiliateUser, affiliate.user_id)

    assert balances.total_commission == stored.total_commission == 9000
    assert balances.pending_commission == stored.pending_commission == 2000
    assert balances.paid_commission == stored.paid_commission == 5000


@pytest.mark.asyncio
async def test_reconcile_rewrites_drifted_counters(session_maker, affiliate):
    await _earn(session_maker, affiliate, [60000])

    async with session_maker() as s:
        stored = await s.get(AffiliateUser, affiliate.user_id)
        stored.pending_commission = 99999
        await s.commit()

    async with session_maker() as s:
        service = AffiliateService(s)
        assert await service.reconcile(affiliate.user_id) is True
        assert await service.reconcile(affiliate.user_id) is False

    async with session_maker() as s:
        assert (await s.get(AffiliateUser, affiliate.user_id)).pending_commission == 3000


@pytest.mark.asyncio
async def test_reconcile_all_affiliates(session_maker, affiliate):
    async with session_maker() as s:
        await AffiliateService(s).join_program("user-aff-0002", "wayan@example.id", "Wayan")
        stored = await s.get(AffiliateUser, affiliate.user_id)
        stored.total_commission = 42
        await s.commit()

    result = await reconcile_all_affiliates(session_maker)

    assert result == {"checked": 2, "fixed": 1, "failed": 0}
