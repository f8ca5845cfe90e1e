"""
账单记录：订单支付成功后按项目生成，用于项目下的单据列表
"""
import uuid

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from designcart.core.database import Base


class BillRecord(Base):
    """账单记录表（只增不改）"""
    __tablename__ = "bill_records"
    __table_args__ = (
        UniqueConstraint("order_id", "document_type", name="uq_bill_records_order_type"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(64), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    document_type = Column(String(20), nullable=False, default="bill")  # bill
    file_name = Column(String(100), nullable=False)  # BILL-XXXXXXXX
    amount = Column(Numeric(12, 2), nullable=False)  # 生成时的订单金额快照
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # 关系
    order = relationship("Order", back_populates="bills")
