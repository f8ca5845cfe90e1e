"""订单查询 API"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from designcart.api.v1.auth import get_current_active_user
from designcart.core.database import get_db
from designcart.schemas.auth import UserResponse
from designcart.schemas.billing import OrderListResponse, OrderResponse
from designcart.services.order_service import OrderService

router = APIRouter()


@router.get("", response_model=OrderListResponse)
async def list_orders(
    current_user: UserResponse = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """当前用户的订单列表（最新在前）"""
    orders = await OrderService(db).list_orders(current_user.id)
    return OrderListResponse(
        orders=[OrderResponse.model_validate(o) for o in orders],
        total=len(orders),
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    current_user: UserResponse = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService(db).get_order(current_user.id, order_id)
    return OrderResponse.model_validate(order)
