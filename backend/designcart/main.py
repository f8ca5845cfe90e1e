"""
FastAPI主应用入口
"""
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException

from designcart.core.config import settings
from designcart.core.database import engine, Base
from designcart.core.exceptions import BillingError
from designcart.core.logging import setup_logging
from designcart.core.health import check_db, check_redis, check_gateway
from designcart.api.v1 import api_router
import designcart.models  # noqa: F401  注册全部模型到 Base.metadata

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时执行
    setup_logging()
    if not settings.razorpay_configured:
        logger.warning("RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET 未配置，下单与验签将返回 500")
    # 创建数据库表
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    # 关闭时执行
    await engine.dispose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Design&Cart 订单、支付对账与单据服务API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# GZip压缩（单据 HTML 较大）
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """为每个请求生成或透传 X-Request-ID，并写入 request.state"""
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


def _error_response(detail: str, request_id: str | None = None) -> dict:
    body = {"detail": detail}
    if request_id:
        body["request_id"] = request_id
    return body


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """统一 HTTP 异常响应格式"""
    rid = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_response(
            detail=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
            request_id=rid,
        ),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求体校验失败统一返回 400"""
    rid = getattr(request.state, "request_id", None)
    errs = exc.errors()
    detail = errs[0].get("msg", "请求参数校验失败") if errs else "请求参数校验失败"
    body = _error_response(detail=detail, request_id=rid)
    body["errors"] = jsonable_encoder(errs)
    return JSONResponse(status_code=400, content=body)


@app.exception_handler(BillingError)
async def billing_exception_handler(request: Request, exc: BillingError):
    """业务异常：按异常自带的 status_code 返回"""
    rid = getattr(request.state, "request_id", None)
    if exc.status_code >= 500:
        logger.error("请求失败 %s %s request_id=%s: %s", request.method, request.url.path, rid, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_response(detail=exc.message, request_id=rid),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """未捕获异常统一格式"""
    rid = getattr(request.state, "request_id", None)
    logger.exception("未捕获异常 %s %s request_id=%s", request.method, request.url.path, rid)
    return JSONResponse(
        status_code=500,
        content=_error_response(
            detail="服务器内部错误",
            request_id=rid,
        ),
    )


# 注册路由
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    """根路径"""
    return {
        "message": "Design&Cart 支付服务API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """健康检查：返回各依赖连通状态"""
    db_ok, db_msg = await check_db()
    redis_ok, redis_msg = check_redis()
    gateway_ok, gateway_msg = check_gateway()
    all_ok = db_ok and redis_ok and gateway_ok
    return JSONResponse(
        content={
            "status": "healthy" if all_ok else "degraded",
            "service": "designcart-api",
            "dependencies": {
                "database": {"ok": db_ok, "message": db_msg},
                "redis": {"ok": redis_ok, "message": redis_msg},
                "gateway": {"ok": gateway_ok, "message": gateway_msg},
            },
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "designcart.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_excludes=["**/__pycache__/**", "**/*.pyc"],
    )
