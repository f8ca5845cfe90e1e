"""
通用依赖：请求上下文（X-Request-ID、客户端 IP）
"""
from typing import Optional

from fastapi import Request


def get_request_id(request: Request) -> Optional[str]:
    """由 request_id_middleware 写入 request.state"""
    return getattr(request.state, "request_id", None)


def get_client_ip(request: Request) -> Optional[str]:
    """优先取反向代理透传的 X-Forwarded-For 第一段"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
