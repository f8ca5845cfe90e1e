"""
操作审计服务：记录下单、支付验签等关键操作到 audit_logs 表
"""
import json
import logging
from typing import Any, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from designcart.core.config import settings
from designcart.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


async def log_audit(
    db: AsyncSession,
    user_id: int,
    action: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    detail: Optional[dict[str, Any]] = None,
    ip: Optional[str] = None,
    request_id: Optional[str] = None,
) -> None:
    """写入一条审计日志。若未启用 AUDIT_LOG_ENABLED 则跳过；写入失败只记日志。"""
    if not getattr(settings, "AUDIT_LOG_ENABLED", True):
        return
    try:
        detail_str = json.dumps(detail, ensure_ascii=False, default=str) if isinstance(detail, dict) else (str(detail) if detail else None)
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            detail=detail_str,
            ip=ip,
            request_id=request_id,
        )
        db.add(entry)
        await db.commit()
    except SQLAlchemyError as e:
        logger.warning("审计日志写入失败 action=%s: %s", action, e)
        await db.rollback()


async def list_audit_logs(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    page_size: int = 20,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
) -> Tuple[List[AuditLog], int]:
    """分页查询某用户的审计日志，返回 (本页记录, 总数)"""
    conditions = [AuditLog.user_id == user_id]
    if action:
        conditions.append(AuditLog.action == action)
    if resource_type:
        conditions.append(AuditLog.resource_type == resource_type)
    if resource_id:
        conditions.append(AuditLog.resource_id == resource_id)

    total = (
        await db.execute(select(func.count()).select_from(AuditLog).where(*conditions))
    ).scalar() or 0
    result = await db.execute(
        select(AuditLog)
        .where(*conditions)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total
