import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.errors import http_error
from api.models import (
    AffiliateCommission,
    AffiliatePayout,
    AffiliateReferral,
    AffiliateSettings,
    AffiliateUser,
    CommissionStatus,
    PayoutStatus,
)
from api.security import get_admin_actor
from api.sse import event_stream
from schemas import (
    AffiliateRead,
    CommissionRead,
    CommissionRejection,
    LedgerBalances,
    PayoutProcess,
    PayoutRead,
    SettingsRead,
    SettingsUpdate,
)
from services.affiliate import AffiliateService, PayoutService, get_affiliate_service, get_payout_service
from services.errors import StoreError
from services.realtime import ChangeFeed, get_change_feed

router = APIRouter()

ADMIN_STREAMS = {
    "affiliates": AffiliateUser,
    "affiliate_referrals": AffiliateReferral,
    "affiliate_commissions": AffiliateCommission,
    "affiliate_payouts": AffiliatePayout,
    "affiliate_settings": AffiliateSettings,
}


@router.get("", response_model=list[AffiliateRead], summary="All affiliates")
async def list_affiliates(service: AffiliateService = Depends(get_affiliate_service)):
    return await service.list_affiliates()


@router.put("/settings", response_model=SettingsRead)
async def update_settings(dto: SettingsUpdate, service: AffiliateService = Depends(get_affiliate_service)):
    return await service.update_settings(dto)


@router.get("/commissions", response_model=list[CommissionRead])
async def list_commissions(
    status: Optional[CommissionStatus] = Query(None),
    affiliate_id: Optional[str] = Query(None),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return await service.list_commissions(affiliate_id=affiliate_id, status=status)


@router.post("/commissions/{commission_id}/approve", response_model=CommissionRead)
async def approve_commission(
    commission_id: uuid.UUID,
    actor: str = Depends(get_admin_actor),
    service: AffiliateService = Depends(get_affiliate_service),
):
    try:
        return await service.approve_commission(commission_id, actor)
    except StoreError as e:
        raise http_error(e)


@router.post("/commissions/{commission_id}/reject", response_model=CommissionRead)
async def reject_commission(
    commission_id: uuid.UUID,
    dto: CommissionRejection,
    actor: str = Depends(get_admin_actor),
    service: AffiliateService = Depends(get_affiliate_service),
):
    try:
        return await service.reject_commission(commission_id, actor, dto.reason)
    except StoreError as e:
        raise http_error(e)


@router.get("/payouts", response_model=list[PayoutRead])
async def list_payouts(
    status: Optional[PayoutStatus] = Query(None),
    affiliate_id: Optional[str] = Query(None),
    service: PayoutService = Depends(get_payout_service),
):
    return await service.list_payouts(affiliate_id=affiliate_id, status=status)


@router.post("/payouts/{payout_id}/process", response_model=PayoutRead, summary="Move a payout along its lifecycle")
async def process_payout(
    payout_id: uuid.UUID,
    dto: PayoutProcess,
    actor: str = Depends(get_admin_actor),
    service: PayoutService = Depends(get_payout_service),
):
    try:
        return await service.process_payout(payout_id, PayoutStatus(dto.status), actor, dto.notes)
    except StoreError as e:
        raise http_error(e)


@router.get("/{user_id}/balances", response_model=LedgerBalances, summary="Balances recomputed from the ledger")
async def compute_balances(user_id: str, service: AffiliateService = Depends(get_affiliate_service)):
    try:
        await service.get_affiliate(user_id)
    except StoreError as e:
        raise http_error(e)
    return await service.compute_balances(user_id)


@router.post("/{user_id}/reconcile", response_model=AffiliateRead, summary="Rewrite drifted counters from the ledger")
async def reconcile(user_id: str, service: AffiliateService = Depends(get_affiliate_service)):
    try:
        await service.reconcile(user_id)
        return await service.get_affiliate(user_id)
    except StoreError as e:
        raise http_error(e)


@router.get("/stream", summary="Live updates of a whole affiliate collection (SSE)")
async def stream_collection(
    request: Request,
    collection: Literal[
        "affiliates", "affiliate_referrals", "affiliate_commissions", "affiliate_payouts", "affiliate_settings"
    ] = Query("affiliates"),
    feed: ChangeFeed = Depends(get_change_feed),
):
    return event_stream(request, feed, collection, ADMIN_STREAMS[collection])
