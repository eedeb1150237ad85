"""
Payments API routes.

Keep this thin: authentication and service wiring come from dependencies,
reconciliation logic lives in the application services.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import (
    get_current_user,
    get_payment_admin_service,
    get_payment_service,
)
from application.dto import CurrentUserDTO
from application.dtos.payments import CheckoutRequest, ImportPaymentsRequest, ImportStats
from application.services.payment_admin_service import PaymentAdminService
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import success_response
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _dump(value):
    if isinstance(value, dict):
        return {key: _dump(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_dump(item) for item in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


# ---------------------------------------------------------------- admin
@router.post("/import", summary="Import payments from providers")
async def import_payments(
    payload: Optional[ImportPaymentsRequest] = None,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentAdminService = Depends(get_payment_admin_service),
):
    provider = (payload or ImportPaymentsRequest()).provider
    result = await service.import_payments(current_user, provider)
    message = "Import finished" if isinstance(result, ImportStats) else "Import finished for all providers"
    return success_response(data=_dump(result), message=message)


@router.delete("", summary="Delete all payments")
async def delete_all_payments(
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentAdminService = Depends(get_payment_admin_service),
):
    result = await service.delete_all_payments(current_user)
    return success_response(data=_dump(result), message="All payments deleted")


@router.post("/refresh", summary="Delete and re-import all payments")
async def refresh_all_payments(
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentAdminService = Depends(get_payment_admin_service),
):
    result = await service.refresh_all_payments(current_user)
    return success_response(data=_dump(result), message="Payments refreshed")


# ----------------------------------------------------------------- user
@router.get("/status", summary="Whether the caller has any paid order")
async def payment_status(
    provider: Optional[str] = Query(default=None),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    paid = await service.get_payment_status(current_user.user_id, provider)
    return success_response(data={"has_paid": paid})


@router.get("/purchases", summary="Products the caller has purchased")
async def purchased_products(
    provider: Optional[str] = Query(default=None),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    products = await service.get_user_purchased_products(current_user.user_id, provider)
    return success_response(data=_dump(products))


@router.get("/purchases/products/{product_id}", summary="Whether the caller purchased a product")
async def purchased_product(
    product_id: str,
    provider: Optional[str] = Query(default=None),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    purchased = await service.check_user_purchased_product(current_user.user_id, product_id, provider)
    return success_response(data={"product_id": product_id, "purchased": purchased})


@router.get("/purchases/variants/{variant_id}", summary="Whether the caller purchased a variant")
async def purchased_variant(
    variant_id: str,
    provider: Optional[str] = Query(default=None),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    purchased = await service.check_user_purchased_variant(current_user.user_id, variant_id, provider)
    return success_response(data={"variant_id": variant_id, "purchased": purchased})


@router.get("/subscription", summary="Whether the caller has an active subscription")
async def subscription_status(
    provider: Optional[str] = Query(default=None),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    active = await service.check_user_subscription(current_user.user_id, provider)
    return success_response(data={"active": active})


@router.get("/history", summary="Payments reconciled for the caller")
async def payment_history(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payments = await service.list_recorded_payments(current_user.user_id, skip=skip, limit=limit)
    data = [
        {
            "id": p.id,
            "processor": p.processor,
            "order_id": p.processor_order_id,
            "amount": p.amount,
            "status": p.status.value,
            "product_name": p.product_name,
            "purchased_at": p.purchased_at.isoformat() if p.purchased_at else None,
        }
        for p in payments
    ]
    return success_response(data=data)


@router.post("/checkout", summary="Create a checkout URL")
async def create_checkout(
    payload: CheckoutRequest,
    current_user: CurrentUserDTO = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    url = await service.create_checkout_url(current_user, payload)
    return success_response(data={"url": url})


# --------------------------------------------------------------- public
@router.get("/products", summary="Products offered by the providers")
async def list_products(
    provider: Optional[str] = Query(default=None),
    service: PaymentService = Depends(get_payment_service),
):
    products = await service.list_products(provider)
    return success_response(data=_dump(products))


@router.post("/webhooks/{provider}", summary="Provider webhook ingress")
async def payments_webhook(
    provider: str,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    # Signature verification happens upstream (gateway / edge function)
    try:
        event = await request.json()
    except ValueError:
        raise BusinessException(
            code=BusinessCode.PARAM_ERROR,
            message="Webhook body must be a JSON object",
            error_type="InvalidWebhookPayload",
        )
    if not isinstance(event, dict):
        raise BusinessException(
            code=BusinessCode.PARAM_ERROR,
            message="Webhook body must be a JSON object",
            error_type="InvalidWebhookPayload",
        )
    stats = await service.handle_webhook_event(provider, event)
    return success_response(
        data={"processed": stats is not None, "stats": _dump(stats) if stats else None},
        message="Webhook received",
    )
