"""
单据渲染服务：账单（单个订单）与发票（同一发票号下的全部订单）

render_bill / render_invoice 是订单数据的纯函数，相同输入得到逐字节相同的 HTML。
DocumentService 负责查询订单、组装发票组并缓存已支付订单的渲染结果。
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from designcart.core.config import settings
from designcart.models.order import Order, OrderStatus
from designcart.schemas.billing import OrderResponse, BillDocumentResponse, InvoiceDocumentResponse
from designcart.services import cache_service
from designcart.services.order_service import OrderService

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
CURRENCY_SYMBOLS = {"INR": "₹"}


def format_money(value: Optional[Decimal], currency: str = "INR") -> str:
    """印度数位分组（12,34,567），小数部分非零时保留两位"""
    amount = Decimal(value or 0).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    integer_part, _, fraction = f"{abs(amount):.2f}".partition(".")
    if len(integer_part) > 3:
        head, tail = integer_part[:-3], integer_part[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        integer_part = ",".join(groups + [tail])
    text = integer_part if fraction == "00" else f"{integer_part}.{fraction}"
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    return f"{sign}{symbol}{text}"


def format_rate(value: Decimal) -> str:
    """18.00 -> 18，12.50 -> 12.5"""
    normalized = Decimal(value).normalize()
    return f"{normalized:f}"


def format_date(value: Optional[datetime]) -> str:
    """"17 October 2026"，按展示时区换算"""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(ZoneInfo(settings.DISPLAY_TIMEZONE))
    return f"{local.day} {local.strftime('%B %Y')}"


def short_id(order_id: str) -> str:
    return order_id[:8].upper()


_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
_env.filters["money"] = format_money
_env.filters["rate"] = format_rate
_env.filters["short_id"] = short_id


def _company() -> dict:
    return {
        "name": settings.COMPANY_NAME,
        "tagline": settings.COMPANY_TAGLINE,
        "email": settings.COMPANY_EMAIL,
        "phone": settings.COMPANY_PHONE,
    }


def _project_label(order: OrderResponse) -> str:
    if order.first_project_id:
        return f"Project {order.first_project_id[:8]}"
    return "General"


@dataclass(frozen=True)
class InvoiceSummary:
    grand_total: Decimal
    total_tax: Decimal
    total_subtotal: Decimal
    tax_rate: Decimal


def summarize_invoice(orders: Sequence[OrderResponse]) -> InvoiceSummary:
    """发票合计：总额 = Σamount，税额 = Σtax，小计 = Σ(subtotal 或 amount)"""
    grand_total = sum((o.amount for o in orders), Decimal("0"))
    total_tax = sum((o.tax or Decimal("0") for o in orders), Decimal("0"))
    total_subtotal = sum(
        (o.subtotal if o.subtotal is not None else o.amount for o in orders),
        Decimal("0"),
    )
    rates = {o.tax_rate for o in orders if o.tax_rate}
    tax_rate = rates.pop() if len(rates) == 1 else settings.DEFAULT_TAX_RATE
    return InvoiceSummary(
        grand_total=grand_total,
        total_tax=total_tax,
        total_subtotal=total_subtotal,
        tax_rate=tax_rate,
    )


def invoice_number_for(order: OrderResponse) -> str:
    return order.invoice_number or f"{settings.INVOICE_PREFIX}-{short_id(order.id)}"


def bill_number_for(order: OrderResponse) -> str:
    return f"BILL-{short_id(order.id)}"


def render_invoice(orders: Sequence[OrderResponse]) -> str:
    """渲染合并发票：列出每个订单的商品行，并给出整组合计"""
    if not orders:
        return "<html><body>No orders found</body></html>"
    first = orders[0]
    return _env.get_template("invoice.html").render(
        company=_company(),
        orders=[(order, _project_label(order)) for order in orders],
        invoice_number=invoice_number_for(first),
        invoice_date=format_date(first.invoice_date or first.paid_at or first.created_at),
        currency=first.currency,
        summary=summarize_invoice(orders),
    )


def render_bill(order: OrderResponse) -> str:
    """渲染单个订单的账单；缺省小计取 amount、税额取 0、税率取 18%"""
    return _env.get_template("bill.html").render(
        company=_company(),
        order=order,
        bill_number=bill_number_for(order),
        bill_date=format_date(order.paid_at or order.created_at),
        project_label=_project_label(order),
        currency=order.currency,
        subtotal=order.subtotal if order.subtotal is not None else order.amount,
        tax=order.tax or Decimal("0"),
        tax_rate=order.tax_rate or settings.DEFAULT_TAX_RATE,
        is_paid=order.status == OrderStatus.PAID.value,
    )


class DocumentService:
    """单据服务类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def render_bill_for_order(self, user_id: int, order_id: str) -> BillDocumentResponse:
        """生成单个订单的账单"""
        order = OrderResponse.model_validate(await OrderService(self.db).get_order(user_id, order_id))
        bill_number = bill_number_for(order)
        cache_key = cache_service.key_bill_document(order.id)
        html = await self._cached_html(order, cache_key, lambda: render_bill(order))
        return BillDocumentResponse(html=html, bill_number=bill_number)

    async def render_invoice_for_order(self, user_id: int, order_id: str) -> InvoiceDocumentResponse:
        """生成订单所在发票组的合并发票；发票组查询失败时退化为单个订单"""
        order = OrderResponse.model_validate(await OrderService(self.db).get_order(user_id, order_id))
        orders = [order]
        degraded = False
        if order.invoice_number:
            group = await self._invoice_group(user_id, order.invoice_number)
            if group:
                orders = group
            else:
                degraded = True

        invoice_number = invoice_number_for(orders[0])
        cache_key = cache_service.key_invoice_document(invoice_number, user_id)
        html = await self._cached_html(order, cache_key, lambda: render_invoice(orders), allow_cache=not degraded)
        return InvoiceDocumentResponse(html=html, invoice_number=invoice_number, order_count=len(orders))

    async def _invoice_group(self, user_id: int, invoice_number: str) -> List[OrderResponse]:
        try:
            result = await self.db.execute(
                select(Order)
                .where(Order.invoice_number == invoice_number, Order.user_id == user_id)
                .order_by(Order.created_at.asc(), Order.id.asc())
            )
            return [OrderResponse.model_validate(o) for o in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("查询发票 %s 的订单失败，仅渲染单个订单: %s", invoice_number, e)
            await self.db.rollback()
            return []

    async def _cached_html(self, order: OrderResponse, cache_key: str, render, allow_cache: bool = True) -> str:
        """已支付订单的单据不会再变，命中缓存直接返回；未支付订单每次重新渲染"""
        cacheable = allow_cache and order.status == OrderStatus.PAID.value
        if cacheable:
            cached = await asyncio.to_thread(cache_service.get_document, cache_key)
            if cached is not None:
                return cached
        html = render()
        if cacheable:
            await asyncio.to_thread(cache_service.set_document, cache_key, html)
        return html
