"""
API v1 路由
"""
from fastapi import APIRouter
from designcart.api.v1 import auth, payment, orders, projects, documents, audit

api_router = APIRouter()

# 注册子路由
api_router.include_router(auth.router, prefix="/auth", tags=["认证"])
api_router.include_router(payment.router, prefix="/payment", tags=["支付"])
api_router.include_router(orders.router, prefix="/orders", tags=["订单"])
api_router.include_router(projects.router, prefix="/projects", tags=["项目"])
api_router.include_router(documents.router, tags=["单据"])
api_router.include_router(audit.router, prefix="/audit-logs", tags=["审计"])
