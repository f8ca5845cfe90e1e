"""
订单服务：创建网关订单并落库 pending 订单；订单与项目账单查询
"""
import json
import logging
import uuid
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from designcart.core.exceptions import OrderNotFound, PersistenceError
from designcart.models.bill_record import BillRecord
from designcart.models.order import Order, OrderStatus
from designcart.schemas.billing import OrderCreate, OrderItem, CreateOrderResponse
from designcart.services.payment_gateway import RazorpayGateway, to_subunits

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def group_items_by_project(items: List[OrderItem]) -> "OrderedDict[Optional[str], List[OrderItem]]":
    """按商品所属项目分组，保持首次出现的顺序；无项目的商品归入 None 组"""
    groups: "OrderedDict[Optional[str], List[OrderItem]]" = OrderedDict()
    for item in items:
        groups.setdefault(item.project_id or None, []).append(item)
    return groups


class OrderService:
    """订单服务类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_order(
        self,
        user_id: int,
        order_data: OrderCreate,
        gateway: RazorpayGateway,
    ) -> CreateOrderResponse:
        """创建网关订单并保存本地 pending 订单。网关失败时不落库；落库失败时网关订单成为孤儿（不补偿）。"""
        gateway.ensure_configured()

        local_id = uuid.uuid4()
        gateway_order = await gateway.create_order(
            amount_subunits=to_subunits(order_data.amount),
            currency=order_data.currency,
            receipt=f"receipt_{local_id.hex}",
            notes={
                "project_ids": json.dumps(order_data.project_ids),
                "user_id": str(user_id),
            },
        )
        gateway_order_id = gateway_order["id"]

        if order_data.split_by_project:
            orders = self._build_project_orders(str(local_id), user_id, gateway_order_id, order_data)
        else:
            orders = [self._build_single_order(str(local_id), user_id, gateway_order_id, order_data)]

        try:
            self.db.add_all(orders)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "订单落库失败，网关订单 %s 已创建但无本地记录 user_id=%s: %s",
                gateway_order_id, user_id, e,
            )
            raise PersistenceError()

        order_ids = [o.id for o in orders]
        logger.info("已创建 %d 个本地订单 %s，网关订单 %s", len(orders), order_ids, gateway_order_id)
        return CreateOrderResponse(
            gateway_order_id=gateway_order_id,
            amount=int(gateway_order.get("amount", to_subunits(order_data.amount))),
            currency=gateway_order.get("currency", order_data.currency),
            local_order_id=order_ids[0],
            local_order_ids=order_ids,
            key_id=gateway.key_id,
        )

    def _build_single_order(
        self,
        order_id: str,
        user_id: int,
        gateway_order_id: str,
        order_data: OrderCreate,
    ) -> Order:
        return Order(
            id=order_id,
            user_id=user_id,
            razorpay_order_id=gateway_order_id,
            status=OrderStatus.PENDING,
            amount=order_data.amount,
            subtotal=order_data.subtotal,
            discount=order_data.discount,
            discount_type=order_data.discount_type,
            tax=order_data.tax,
            tax_rate=order_data.tax_rate,
            currency=order_data.currency,
            items=[item.model_dump(mode="json") for item in order_data.items],
            project_ids=list(order_data.project_ids),
        )

    def _build_project_orders(
        self,
        first_order_id: str,
        user_id: int,
        gateway_order_id: str,
        order_data: OrderCreate,
    ) -> List[Order]:
        """每个项目一个订单，金额按商品小计与税率重新计算；折扣已体现在网关总额中"""
        tax_rate = order_data.tax_rate or Decimal("0")
        orders = []
        for index, (project_id, items) in enumerate(group_items_by_project(order_data.items).items()):
            subtotal = _money(sum((item.line_total for item in items), Decimal("0")))
            tax = _money(subtotal * tax_rate / 100)
            orders.append(Order(
                id=first_order_id if index == 0 else str(uuid.uuid4()),
                user_id=user_id,
                razorpay_order_id=gateway_order_id,
                status=OrderStatus.PENDING,
                amount=subtotal + tax,
                subtotal=subtotal,
                discount=Decimal("0"),
                discount_type="none",
                tax=tax,
                tax_rate=order_data.tax_rate,
                currency=order_data.currency,
                items=[item.model_dump(mode="json") for item in items],
                project_ids=[project_id] if project_id else [],
            ))
        return orders

    async def list_orders(self, user_id: int) -> List[Order]:
        """当前用户的订单，按创建时间倒序"""
        result = await self.db.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id)
        )
        return list(result.scalars().all())

    async def get_order(self, user_id: int, order_id: str) -> Order:
        """获取当前用户的订单；不存在或不属于该用户时抛 OrderNotFound"""
        result = await self.db.execute(
            select(Order).where(Order.id == order_id, Order.user_id == user_id)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFound()
        return order

    async def list_project_bills(self, user_id: int, project_id: str) -> List[BillRecord]:
        """项目下当前用户订单生成的账单记录，按创建时间倒序"""
        result = await self.db.execute(
            select(BillRecord)
            .join(Order, BillRecord.order_id == Order.id)
            .where(BillRecord.project_id == project_id, Order.user_id == user_id)
            .order_by(BillRecord.created_at.desc(), BillRecord.id)
        )
        return list(result.scalars().all())
