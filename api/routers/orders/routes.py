import os
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, Request, UploadFile, status
from starlette.concurrency import run_in_threadpool

from api.errors import http_error
from api.models import Order, OrderStatus, PaymentStatus, Product
from api.security import get_visitor_tokens, require_admin, require_admin_unless_scoped, verified_visitor
from api.sse import event_stream
from schemas import OrderCreate, OrderRead, OrderStatusUpdate, PaymentProofLink, ProductRead
from services.errors import StoreError
from services.orders import OrderService, get_order_service
from services.realtime import ChangeFeed, get_change_feed
from services.storage import PaymentProofStorage, get_storage
from utils.referral import VisitorToken

router = APIRouter()
products_router = APIRouter()

MAX_PROOF_SIZE = 10 * 1024 * 1024
PROOF_LINK_TTL = 900


@router.post("", response_model=OrderRead, status_code=201, summary="Place an order")
async def create_order(
    dto: OrderCreate,
    x_visitor_token: Optional[str] = Header(None),
    tokens: VisitorToken = Depends(get_visitor_tokens),
    service: OrderService = Depends(get_order_service),
):
    visitor_id = verified_visitor(x_visitor_token, tokens)
    try:
        return await service.create_order(dto, visitor_id=visitor_id)
    except StoreError as e:
        raise http_error(e)


@router.get(
    "",
    response_model=list[OrderRead],
    summary="List orders, newest first",
    dependencies=[Depends(require_admin_unless_scoped)],
)
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    user_id: Optional[str] = Query(None),
    service: OrderService = Depends(get_order_service),
):
    return await service.list_orders(status=status, payment_status=payment_status, user_id=user_id)


@router.get(
    "/stream",
    summary="Live order updates (SSE)",
    dependencies=[Depends(require_admin_unless_scoped)],
)
async def stream_orders(
    request: Request,
    user_id: Optional[str] = Query(None),
    status: Optional[OrderStatus] = Query(None),
    feed: ChangeFeed = Depends(get_change_feed),
):
    criteria, where = [], {}
    if user_id:
        criteria.append(Order.user_id == user_id)
        where["user_id"] = user_id
    if status:
        criteria.append(Order.status == status)
        where["status"] = status.value
    return event_stream(request, feed, "orders", Order, *criteria, where=where)


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(order_id: uuid.UUID, service: OrderService = Depends(get_order_service)):
    try:
        return await service.get_order(order_id)
    except StoreError as e:
        raise http_error(e)


@router.post(
    "/{order_id}/confirm",
    response_model=OrderRead,
    summary="Confirm an order and take its items out of stock",
    dependencies=[Depends(require_admin)],
)
async def confirm_order(order_id: uuid.UUID, service: OrderService = Depends(get_order_service)):
    try:
        return await service.confirm_order(order_id)
    except StoreError as e:
        raise http_error(e)


@router.post("/{order_id}/cancel", response_model=OrderRead, dependencies=[Depends(require_admin)])
async def cancel_order(order_id: uuid.UUID, service: OrderService = Depends(get_order_service)):
    try:
        return await service.cancel_order(order_id)
    except StoreError as e:
        raise http_error(e)


@router.patch("/{order_id}/status", response_model=OrderRead, dependencies=[Depends(require_admin)])
async def update_order_status(
    order_id: uuid.UUID,
    dto: OrderStatusUpdate,
    service: OrderService = Depends(get_order_service),
):
    try:
        return await service.update_order_status(order_id, dto.status, dto.payment_status)
    except StoreError as e:
        raise http_error(e)


@router.post("/{order_id}/payment-proof", response_model=OrderRead, summary="Upload a payment proof")
async def upload_payment_proof(
    order_id: uuid.UUID,
    file: UploadFile = File(...),
    storage: PaymentProofStorage = Depends(get_storage),
    service: OrderService = Depends(get_order_service),
):
    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    if len(content) > MAX_PROOF_SIZE:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large")

    try:
        await service.get_order(order_id)
    except StoreError as e:
        raise http_error(e)

    extension = os.path.splitext(file.filename or "")[1]
    try:
        url = await run_in_threadpool(storage.save, content, extension, content_type=file.content_type)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        return await service.update_payment_proof(order_id, url)
    except StoreError as e:
        raise http_error(e)


@router.get(
    "/{order_id}/payment-proof",
    response_model=PaymentProofLink,
    summary="Temporary link to the uploaded payment proof",
    dependencies=[Depends(require_admin)],
)
async def get_payment_proof(
    order_id: uuid.UUID,
    storage: PaymentProofStorage = Depends(get_storage),
    service: OrderService = Depends(get_order_service),
):
    try:
        order = await service.get_order(order_id)
    except StoreError as e:
        raise http_error(e)
    if not order.payment_proof_url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No payment proof uploaded")

    try:
        url = await run_in_threadpool(storage.presign, order.payment_proof_url, expires_in=PROOF_LINK_TTL)
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return PaymentProofLink(url=url, expires_in=PROOF_LINK_TTL)


@products_router.get("", response_model=list[ProductRead])
async def list_products(service: OrderService = Depends(get_order_service)):
    return await service.list_products()


@products_router.get("/stream", summary="Live stock levels (SSE)")
async def stream_products(request: Request, feed: ChangeFeed = Depends(get_change_feed)):
    return event_stream(request, feed, "products", Product)
