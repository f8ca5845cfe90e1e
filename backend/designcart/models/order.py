"""
订单模型
"""
import enum
import uuid

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from designcart.core.database import Base


class OrderStatus(str, enum.Enum):
    """订单状态（FAILED / REFUNDED 预留，当前流程不会产生）"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


def _new_order_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    """订单表"""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_order_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    razorpay_order_id = Column(String(64), nullable=False, index=True)
    status = Column(
        SQLEnum(OrderStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    amount = Column(Numeric(12, 2), nullable=False)  # 含税总额
    subtotal = Column(Numeric(12, 2), nullable=True)
    discount = Column(Numeric(12, 2), default=0)
    discount_type = Column(String(20), default="none")  # none, percentage, flat
    tax = Column(Numeric(12, 2), default=0)
    tax_rate = Column(Numeric(5, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="INR")
    items = Column(JSON, nullable=False, default=list)  # [{title, price, qty, area, product_id, project_id}]
    project_ids = Column(JSON, nullable=False, default=list)

    # 支付验签后写入
    razorpay_payment_id = Column(String(64), nullable=True)
    razorpay_signature = Column(String(128), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # 同一次结算的所有订单共享同一发票号与开票时间
    invoice_number = Column(String(50), nullable=True, index=True)
    invoice_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # 关系
    user = relationship("User", back_populates="orders")
    bills = relationship("BillRecord", back_populates="order")
