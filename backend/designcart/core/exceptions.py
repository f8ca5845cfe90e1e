"""
业务异常：服务层抛出，由 main.py 中的异常处理器统一转换为 HTTP 响应
"""


class BillingError(Exception):
    """订单/支付相关错误基类"""

    status_code: int = 500
    default_message: str = "订单处理失败"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(BillingError):
    status_code = 401
    default_message = "未认证或认证凭据无效"


class OrderNotFound(BillingError):
    status_code = 404
    default_message = "订单不存在"


class InvalidSignature(BillingError):
    """支付签名校验失败：整批订单均不更新"""
    status_code = 400
    default_message = "支付签名无效"


class GatewayUnavailable(BillingError):
    """支付网关未配置凭据"""
    status_code = 500
    default_message = "支付网关未配置"


class GatewayError(BillingError):
    status_code = 500
    default_message = "支付网关下单失败"


class PersistenceError(BillingError):
    status_code = 500
    default_message = "订单保存失败"


class NoOrdersUpdated(BillingError):
    """整批订单无一更新成功（各订单的具体原因已作为 skipped 记录）"""
    status_code = 500
    default_message = "没有订单被更新"
