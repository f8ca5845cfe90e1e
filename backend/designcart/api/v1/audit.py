"""操作审计 API"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from designcart.core.database import get_db
from designcart.schemas.audit import AuditLogItem, AuditLogListResponse
from designcart.api.v1.auth import get_current_active_user
from designcart.schemas.auth import UserResponse
from designcart.services.audit_service import list_audit_logs

router = APIRouter()


@router.get("", response_model=AuditLogListResponse)
async def get_audit_logs(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    action: Optional[str] = Query(None, description="按操作类型筛选，如 create_order / verify_payment"),
    resource_type: Optional[str] = Query(None, description="按资源类型筛选：order / payment"),
    resource_id: Optional[str] = Query(None, description="按网关订单号筛选"),
    current_user: UserResponse = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """查询当前用户的下单与支付审计记录"""
    items, total = await list_audit_logs(
        db,
        current_user.id,
        page=page,
        page_size=page_size,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
    )
    return AuditLogListResponse(
        items=[AuditLogItem.model_validate(x) for x in items],
        total=total,
        page=page,
        page_size=page_size,
    )
