"""
支付验签与对账服务

一次验签对应一次结算（checkout batch）：
1. 校验 Razorpay 回调签名，失败则整批终止，不更新任何订单；
2. 为整批生成一个发票号与一个开票时间；
3. 逐个订单独立处理：查询 -> 归属校验 -> 条件更新为 paid -> 生成账单记录。
   单个订单失败只记为 skipped，不影响同批其他订单；
4. 整批无一订单更新成功时返回 NoOrdersUpdated。
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from designcart.core.exceptions import InvalidSignature, NoOrdersUpdated
from designcart.models.bill_record import BillRecord
from designcart.models.order import Order, OrderStatus
from designcart.schemas.billing import PaymentVerifyRequest, OrderResponse, BillRecordResponse
from designcart.services.audit_service import log_audit
from designcart.services.invoice_number_service import InvoiceNumberService
from designcart.services.payment_gateway import RazorpayGateway

logger = logging.getLogger(__name__)


class SkipReason(str, enum.Enum):
    """订单被跳过的原因"""
    NOT_FOUND = "not_found"
    NOT_OWNER = "not_owner"
    GATEWAY_ORDER_MISMATCH = "gateway_order_mismatch"
    ALREADY_PAID = "already_paid"
    NOT_PENDING = "not_pending"  # failed / refunded
    UPDATE_FAILED = "update_failed"


@dataclass
class OrderPaid:
    # 快照：后续订单回滚会使会话中的 ORM 对象过期
    order: OrderResponse
    bill: Optional[BillRecordResponse] = None


@dataclass
class OrderSkipped:
    order_id: str
    reason: SkipReason


OrderOutcome = Union[OrderPaid, OrderSkipped]


@dataclass
class ReconciliationResult:
    """一次结算的对账结果"""
    invoice_number: str
    invoice_date: datetime
    outcomes: List[OrderOutcome] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def paid_orders(self) -> List[OrderResponse]:
        return [o.order for o in self.outcomes if isinstance(o, OrderPaid)]

    @property
    def skipped(self) -> List[OrderSkipped]:
        return [o for o in self.outcomes if isinstance(o, OrderSkipped)]

    @property
    def bills(self) -> List[BillRecordResponse]:
        return [o.bill for o in self.outcomes if isinstance(o, OrderPaid) and o.bill is not None]


def bill_file_name(order_id: str) -> str:
    """BILL- + 订单号前 8 位（大写）"""
    return f"BILL-{order_id[:8].upper()}"


class PaymentService:
    """支付验签与对账服务类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def verify_payment(
        self,
        user_id: int,
        payload: PaymentVerifyRequest,
        gateway: RazorpayGateway,
        request_id: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> ReconciliationResult:
        """校验签名并把整批订单标记为已支付。签名不符抛 InvalidSignature；无订单更新抛 NoOrdersUpdated。"""
        if not gateway.verify_payment_signature(
            payload.razorpay_order_id,
            payload.razorpay_payment_id,
            payload.razorpay_signature,
        ):
            logger.error(
                "支付签名不匹配 user_id=%s razorpay_order_id=%s payment_id=%s",
                user_id, payload.razorpay_order_id, payload.razorpay_payment_id,
            )
            await log_audit(
                self.db,
                user_id=user_id,
                action="payment_signature_mismatch",
                resource_type="payment",
                resource_id=payload.razorpay_order_id,
                detail={"payment_id": payload.razorpay_payment_id, "order_ids": payload.order_ids},
                ip=ip,
                request_id=request_id,
            )
            raise InvalidSignature()

        invoice_number = await InvoiceNumberService(self.db).next_invoice_number()
        invoice_date = datetime.now(timezone.utc)
        result = ReconciliationResult(invoice_number=invoice_number, invoice_date=invoice_date)

        for order_id in payload.order_ids:
            outcome = await self._reconcile_order(order_id, user_id, payload, invoice_number, invoice_date, result)
            result.outcomes.append(outcome)
            if isinstance(outcome, OrderSkipped):
                logger.warning("订单 %s 已跳过: %s", order_id, outcome.reason.value)

        await log_audit(
            self.db,
            user_id=user_id,
            action="verify_payment",
            resource_type="payment",
            resource_id=payload.razorpay_order_id,
            detail={
                "invoice_number": invoice_number,
                "paid": [o.id for o in result.paid_orders],
                "skipped": {s.order_id: s.reason.value for s in result.skipped},
            },
            ip=ip,
            request_id=request_id,
        )

        if not result.paid_orders:
            logger.error("支付 %s 验签通过但没有订单被更新: %s", payload.razorpay_payment_id, payload.order_ids)
            raise NoOrdersUpdated()

        logger.info(
            "支付 %s 对账完成：发票号 %s，更新 %d/%d 个订单",
            payload.razorpay_payment_id, invoice_number, len(result.paid_orders), len(payload.order_ids),
        )
        return result

    async def _reconcile_order(
        self,
        order_id: str,
        user_id: int,
        payload: PaymentVerifyRequest,
        invoice_number: str,
        invoice_date: datetime,
        result: ReconciliationResult,
    ) -> OrderOutcome:
        try:
            order = (
                await self.db.execute(select(Order).where(Order.id == order_id))
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("查询订单 %s 失败: %s", order_id, e)
            return OrderSkipped(order_id, SkipReason.UPDATE_FAILED)

        if order is None:
            return OrderSkipped(order_id, SkipReason.NOT_FOUND)
        if order.user_id != user_id:
            return OrderSkipped(order_id, SkipReason.NOT_OWNER)
        if order.razorpay_order_id != payload.razorpay_order_id:
            return OrderSkipped(order_id, SkipReason.GATEWAY_ORDER_MISMATCH)
        if order.status == OrderStatus.PAID:
            return OrderSkipped(order_id, SkipReason.ALREADY_PAID)
        if order.status != OrderStatus.PENDING:
            return OrderSkipped(order_id, SkipReason.NOT_PENDING)
        before = OrderResponse.model_validate(order)

        # 条件更新：只有仍为 pending 的订单才会被改为 paid，并发验签时只有一方成功
        try:
            updated = await self.db.execute(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.user_id == user_id,
                    Order.status == OrderStatus.PENDING,
                )
                .values(
                    status=OrderStatus.PAID,
                    razorpay_payment_id=payload.razorpay_payment_id,
                    razorpay_signature=payload.razorpay_signature,
                    paid_at=invoice_date,
                    invoice_number=invoice_number,
                    invoice_date=invoice_date,
                )
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount != 1:
                await self.db.rollback()
                return OrderSkipped(order_id, SkipReason.ALREADY_PAID)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("更新订单 %s 为已支付失败: %s", order_id, e)
            return OrderSkipped(order_id, SkipReason.UPDATE_FAILED)

        logger.info("订单 %s 已支付，发票号 %s", order_id, invoice_number)
        # 已提交，之后的失败不能再把订单记为未更新
        try:
            await self.db.refresh(order)
            snapshot = OrderResponse.model_validate(order)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("订单 %s 已支付但重新读取失败，按写入值返回: %s", order_id, e)
            snapshot = before.model_copy(update={
                "status": OrderStatus.PAID.value,
                "razorpay_payment_id": payload.razorpay_payment_id,
                "paid_at": invoice_date,
                "invoice_number": invoice_number,
                "invoice_date": invoice_date,
            })
        bill = await self._create_bill_record(snapshot, result)
        return OrderPaid(order=snapshot, bill=bill)

    async def _create_bill_record(self, order: OrderResponse, result: ReconciliationResult) -> Optional[BillRecordResponse]:
        """为订单的第一个项目生成账单记录；失败不回滚支付状态"""
        project_id = order.first_project_id
        if not project_id:
            logger.warning("订单 %s 未关联项目，不生成账单记录", order.id)
            result.warnings.append(f"订单 {order.id} 未关联项目，未生成账单记录")
            return None

        bill = BillRecord(
            project_id=project_id,
            order_id=order.id,
            document_type="bill",
            file_name=bill_file_name(order.id),
            amount=order.amount,
        )
        try:
            self.db.add(bill)
            await self.db.flush()
            bill_id = bill.id
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("订单 %s 已支付，但账单记录生成失败: %s", order.id, e)
            result.warnings.append(f"订单 {order.id} 账单记录生成失败")
            return None
        logger.info("订单 %s 已生成账单记录 %s（项目 %s）", order.id, bill.file_name, project_id)
        try:
            await self.db.refresh(bill)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("账单记录 %s 已保存但重新读取失败: %s", bill_id, e)
            return BillRecordResponse(
                id=bill_id,
                project_id=project_id,
                order_id=order.id,
                document_type="bill",
                file_name=bill_file_name(order.id),
                amount=order.amount,
            )
        return BillRecordResponse.model_validate(bill)
