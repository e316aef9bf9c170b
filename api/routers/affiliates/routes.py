from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from api.errors import http_error
from api.models import AffiliateCommission, AffiliatePayout, AffiliateReferral, AffiliateUser
from api.security import get_visitor_tokens, verified_visitor
from api.sse import event_stream
from schemas import (
    AffiliateJoin,
    AffiliateRead,
    BankInfo,
    ClickTracked,
    CommissionRead,
    Follower,
    PayoutRead,
    PayoutRequestCreate,
    ReferralClick,
    ReferralRead,
    ReferralRegistration,
    SettingsRead,
)
from services.affiliate import AffiliateService, PayoutService, get_affiliate_service, get_payout_service
from services.errors import StoreError
from services.realtime import ChangeFeed, get_change_feed
from utils.referral import VisitorToken

router = APIRouter()

# collection -> (model, column that holds the affiliate's user id)
AFFILIATE_STREAMS = {
    "affiliates": (AffiliateUser, "user_id"),
    "affiliate_referrals": (AffiliateReferral, "referrer_id"),
    "affiliate_commissions": (AffiliateCommission, "affiliate_id"),
    "affiliate_payouts": (AffiliatePayout, "affiliate_id"),
}


@router.get("/settings", response_model=SettingsRead, summary="Program terms, rate and payout limits")
async def get_settings(service: AffiliateService = Depends(get_affiliate_service)):
    return await service.get_settings()


@router.post("/join", response_model=AffiliateRead, summary="Join the affiliate program")
async def join_program(dto: AffiliateJoin, service: AffiliateService = Depends(get_affiliate_service)):
    return await service.join_program(dto.user_id, dto.email, dto.display_name)


@router.post("/click", response_model=ClickTracked, summary="Record a referral-link visit")
async def track_click(
    dto: ReferralClick,
    tokens: VisitorToken = Depends(get_visitor_tokens),
    service: AffiliateService = Depends(get_affiliate_service),
):
    token = dto.visitor_token
    visitor_id = verified_visitor(token, tokens)
    if visitor_id is None:
        token = tokens.issue()
        visitor_id = tokens.verify(token)
    try:
        referral = await service.track_click(dto.referral_code, visitor_id)
    except StoreError as e:
        raise http_error(e)
    return ClickTracked(visitor_token=token, referral=ReferralRead.model_validate(referral))


@router.post("/register", response_model=ReferralRead, summary="Link a new account to a referral code")
async def register_with_referral(
    dto: ReferralRegistration,
    tokens: VisitorToken = Depends(get_visitor_tokens),
    service: AffiliateService = Depends(get_affiliate_service),
):
    visitor_id = verified_visitor(dto.visitor_token, tokens)
    try:
        return await service.register_with_referral(
            dto.referral_code, dto.user_id, dto.email, dto.display_name, visitor_id=visitor_id
        )
    except StoreError as e:
        raise http_error(e)


@router.get("/by-code/{referral_code}", response_model=AffiliateRead)
async def get_by_referral_code(referral_code: str, service: AffiliateService = Depends(get_affiliate_service)):
    affiliate = await service.get_by_referral_code(referral_code)
    if not affiliate:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid referral code")
    return affiliate


@router.get("/{user_id}", response_model=AffiliateRead)
async def get_affiliate(user_id: str, service: AffiliateService = Depends(get_affiliate_service)):
    try:
        return await service.get_affiliate(user_id)
    except StoreError as e:
        raise http_error(e)


@router.put("/{user_id}/bank-info", response_model=AffiliateRead)
async def update_bank_info(user_id: str, dto: BankInfo, service: AffiliateService = Depends(get_affiliate_service)):
    try:
        return await service.update_bank_info(user_id, dto.model_dump())
    except StoreError as e:
        raise http_error(e)


@router.get("/{user_id}/referrals", response_model=list[ReferralRead])
async def list_referrals(user_id: str, service: AffiliateService = Depends(get_affiliate_service)):
    return await service.list_referrals(user_id)


@router.get("/{user_id}/commissions", response_model=list[CommissionRead])
async def list_commissions(user_id: str, service: AffiliateService = Depends(get_affiliate_service)):
    return await service.list_commissions(affiliate_id=user_id)


@router.get("/{user_id}/followers", response_model=list[Follower])
async def get_followers(user_id: str, service: AffiliateService = Depends(get_affiliate_service)):
    return await service.get_followers(user_id)


@router.get("/{user_id}/payouts", response_model=list[PayoutRead])
async def list_payouts(user_id: str, service: PayoutService = Depends(get_payout_service)):
    return await service.list_payouts(affiliate_id=user_id)


@router.post("/{user_id}/payouts", response_model=PayoutRead, status_code=201, summary="Request a payout")
async def request_payout(
    user_id: str,
    dto: PayoutRequestCreate,
    service: PayoutService = Depends(get_payout_service),
):
    try:
        return await service.request_payout(user_id, dto)
    except StoreError as e:
        raise http_error(e)


@router.get("/{user_id}/stream", summary="Live updates of the affiliate's own rows (SSE)")
async def stream_affiliate(
    request: Request,
    user_id: str,
    collection: Literal["affiliates", "affiliate_referrals", "affiliate_commissions", "affiliate_payouts"] = Query("affiliates"),
    feed: ChangeFeed = Depends(get_change_feed),
):
    model, column = AFFILIATE_STREAMS[collection]
    return event_stream(
        request, feed, collection, model,
        getattr(model, column) == user_id,
        where={column: user_id},
    )
