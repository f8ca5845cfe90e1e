"""审计日志 Schema"""
import json
from datetime import datetime
from typing import Any, Optional, List

from pydantic import BaseModel, field_validator


class AuditLogItem(BaseModel):
    id: int
    user_id: int
    action: str  # create_order / verify_payment / payment_signature_mismatch
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    detail: Optional[Any] = None
    ip: Optional[str] = None
    request_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("detail", mode="before")
    @classmethod
    def _parse_detail(cls, v):
        """detail 以 JSON 文本落库，返回时还原为对象"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except ValueError:
                return v
        return v


class AuditLogListResponse(BaseModel):
    items: List[AuditLogItem]
    total: int
    page: int
    page_size: int
