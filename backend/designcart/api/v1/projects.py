"""项目账单 API"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from designcart.api.v1.auth import get_current_active_user
from designcart.core.database import get_db
from designcart.schemas.auth import UserResponse
from designcart.schemas.billing import BillRecordListResponse, BillRecordResponse
from designcart.services.order_service import OrderService

router = APIRouter()


@router.get("/{project_id}/bills", response_model=BillRecordListResponse)
async def list_project_bills(
    project_id: str,
    current_user: UserResponse = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """项目下的账单记录（仅当前用户的订单）"""
    bills = await OrderService(db).list_project_bills(current_user.id, project_id)
    return BillRecordListResponse(
        bills=[BillRecordResponse.model_validate(b) for b in bills],
        total=len(bills),
    )
