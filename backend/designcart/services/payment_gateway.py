"""
Razorpay 支付网关客户端：创建网关订单、校验支付回调签名
"""
import hashlib
import hmac
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx

from designcart.core.config import settings
from designcart.core.exceptions import GatewayError, GatewayUnavailable

logger = logging.getLogger(__name__)


def to_subunits(amount: Decimal) -> int:
    """主币种金额转为最小货币单位（INR -> paise），四舍五入到整数"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    """HMAC-SHA256(secret, "{order_id}|{payment_id}")，十六进制"""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """常量时间比较重新计算的签名与客户端提交的签名"""
    expected = compute_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))


class RazorpayGateway:
    """Razorpay REST 客户端（仅使用 Orders API）"""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id or ""
        self.key_secret = key_secret or ""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.key_id.strip() and self.key_secret.strip())

    def ensure_configured(self) -> None:
        if not self.is_configured:
            raise GatewayUnavailable()

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        self.ensure_configured()
        return verify_signature(order_id, payment_id, signature, self.key_secret)

    async def create_order(
        self,
        amount_subunits: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """创建网关订单，返回网关响应（至少包含 id / amount / currency）。不重试。"""
        self.ensure_configured()
        body = {
            "amount": amount_subunits,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post("/orders", json=body)
        except httpx.HTTPError as e:
            logger.error("Razorpay 下单请求失败 receipt=%s: %s", receipt, e)
            raise GatewayError(f"支付网关请求失败: {e}")

        if resp.status_code >= 400:
            description = _error_description(resp)
            logger.error("Razorpay 下单失败 status=%s receipt=%s: %s", resp.status_code, receipt, description)
            raise GatewayError(f"支付网关下单失败: {description}")

        data = resp.json()
        if not data.get("id"):
            raise GatewayError("支付网关返回缺少订单号")
        logger.info("Razorpay 订单已创建 id=%s amount=%s %s", data["id"], data.get("amount"), data.get("currency"))
        return data


def _error_description(resp: httpx.Response) -> str:
    """提取 Razorpay 错误体中的 description，解析失败时回退到原始文本"""
    try:
        return resp.json().get("error", {}).get("description") or resp.text
    except ValueError:
        return resp.text


def get_payment_gateway() -> RazorpayGateway:
    """FastAPI 依赖：按当前配置构造网关客户端（测试中可覆盖）"""
    return RazorpayGateway(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        base_url=settings.RAZORPAY_BASE_URL,
        timeout=settings.RAZORPAY_TIMEOUT_SECONDS,
    )
