"""
发票号计数器：按年月分段，事务内自增
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from designcart.core.database import Base


class InvoiceCounter(Base):
    """发票号计数表"""
    __tablename__ = "invoice_counters"

    period = Column(String(6), primary_key=True)  # YYYYMM
    value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
