"""
支付 API：创建网关订单、支付回调验签
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from designcart.api.deps import get_client_ip, get_request_id
from designcart.api.v1.auth import get_current_active_user
from designcart.core.database import get_db
from designcart.schemas.auth import UserResponse
from designcart.schemas.billing import (
    CreateOrderResponse,
    OrderCreate,
    PaymentVerifyRequest,
    PaymentVerifyResponse,
    SkippedOrder,
)
from designcart.services.audit_service import log_audit
from designcart.services.order_service import OrderService
from designcart.services.payment_gateway import RazorpayGateway, get_payment_gateway
from designcart.services.payment_service import PaymentService

router = APIRouter()


@router.post("/create-order", response_model=CreateOrderResponse)
async def create_order(
    order_data: OrderCreate,
    current_user: UserResponse = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    request_id: Optional[str] = Depends(get_request_id),
    ip: Optional[str] = Depends(get_client_ip),
):
    """创建 Razorpay 订单并保存本地 pending 订单"""
    result = await OrderService(db).create_order(current_user.id, order_data, gateway)
    await log_audit(
        db,
        user_id=current_user.id,
        action="create_order",
        resource_type="order",
        resource_id=result.gateway_order_id,
        detail={"order_ids": result.local_order_ids, "amount": str(order_data.amount), "currency": result.currency},
        ip=ip,
        request_id=request_id,
    )
    return result


@router.post("/verify", response_model=PaymentVerifyResponse)
async def verify_payment(
    payload: PaymentVerifyRequest,
    current_user: UserResponse = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    request_id: Optional[str] = Depends(get_request_id),
    ip: Optional[str] = Depends(get_client_ip),
):
    """校验支付签名，把同一次结算的订单标记为已支付并共享一个发票号"""
    result = await PaymentService(db).verify_payment(
        current_user.id, payload, gateway, request_id=request_id, ip=ip,
    )
    return PaymentVerifyResponse(
        invoice_number=result.invoice_number,
        invoice_date=result.invoice_date,
        requested=len(payload.order_ids),
        updated=len(result.paid_orders),
        orders=result.paid_orders,
        skipped=[SkippedOrder(order_id=s.order_id, reason=s.reason.value) for s in result.skipped],
        warnings=result.warnings,
    )
