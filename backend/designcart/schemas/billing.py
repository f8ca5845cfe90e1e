"""
订单、支付与单据相关Schema
"""
from decimal import Decimal
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from designcart.core.config import settings


class OrderItem(BaseModel):
    """订单行（购物车商品）"""
    title: Optional[str] = None
    price: Decimal = Field(ge=0, decimal_places=2)  # 单价（主币种单位）
    qty: int = Field(1, ge=1)
    area: Optional[str] = None  # 所属空间，如 Living Room
    product_id: Optional[str] = None
    project_id: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.qty


class OrderCreate(BaseModel):
    """创建支付订单"""
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)  # 应付总额（主币种单位）
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, min_length=3, max_length=3)
    items: List[OrderItem] = Field(min_length=1)
    project_ids: List[str] = []
    subtotal: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    discount: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    discount_type: str = "none"
    tax: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2)
    # 按商品所属项目拆分为多个本地订单（共用同一个网关订单）
    split_by_project: bool = False

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.upper()


class CreateOrderResponse(BaseModel):
    """创建订单响应：供前端支付组件使用"""
    gateway_order_id: str
    amount: int  # 最小货币单位（paise），以网关返回为准
    currency: str
    local_order_id: str
    local_order_ids: List[str]
    key_id: str


class PaymentVerifyRequest(BaseModel):
    """支付验签请求：一次结算中需要标记为已支付的本地订单"""
    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)
    order_ids: List[str] = Field(min_length=1)

    @field_validator("order_ids")
    @classmethod
    def _dedupe(cls, v: List[str]) -> List[str]:
        seen = []
        for order_id in v:
            if order_id not in seen:
                seen.append(order_id)
        return seen


class OrderResponse(BaseModel):
    """订单响应，同时作为单据渲染的输入快照"""
    id: str
    user_id: int
    razorpay_order_id: str
    status: str
    amount: Decimal
    subtotal: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    discount_type: Optional[str] = None
    tax: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None
    currency: str
    items: List[OrderItem] = []
    project_ids: List[str] = []
    razorpay_payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, v):
        return getattr(v, "value", v)

    @property
    def first_project_id(self) -> Optional[str]:
        """账单记录与单据抬头只使用第一个项目"""
        return self.project_ids[0] if self.project_ids else None


class OrderListResponse(BaseModel):
    """订单列表响应"""
    orders: List[OrderResponse]
    total: int


class SkippedOrder(BaseModel):
    """未被更新的订单及原因"""
    order_id: str
    reason: str


class PaymentVerifyResponse(BaseModel):
    """支付验签响应：updated < requested 表示部分订单被跳过"""
    success: bool = True
    invoice_number: str
    invoice_date: datetime
    requested: int
    updated: int
    orders: List[OrderResponse]
    skipped: List[SkippedOrder] = []
    warnings: List[str] = []


class BillRecordResponse(BaseModel):
    """账单记录响应"""
    id: str
    project_id: str
    order_id: str
    document_type: str
    file_name: str
    amount: Decimal
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BillRecordListResponse(BaseModel):
    """项目账单列表响应"""
    bills: List[BillRecordResponse]
    total: int


class DocumentRequest(BaseModel):
    """单据生成请求"""
    order_id: str = Field(min_length=1)


class BillDocumentResponse(BaseModel):
    success: bool = True
    html: str
    bill_number: str


class InvoiceDocumentResponse(BaseModel):
    success: bool = True
    html: str
    invoice_number: str
    order_count: int
