"""
FastAPI主应用入口
"""
import asyncio
import logging
import uuid
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.database import Database
from app.core.exceptions import OrderError
from app.api.v1 import api_router
from app.core.logging import setup_logging
from app.core.health import check_db, check_redis
from app.services.cache_service import OrderCache, create_redis_client
from app.services.notification_service import OrderNotifier
from app.services.paystack_service import PaystackClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：数据库、Redis、支付网关、通知器由入口显式创建并挂到 app.state"""
    # 启动时执行
    setup_logging()
    database = Database(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    # 建表（不做迁移）
    await database.create_all()
    app.state.database = database
    redis_client = create_redis_client()
    app.state.redis = redis_client
    app.state.cache = OrderCache(redis_client)
    app.state.payment_gateway = PaystackClient()
    app.state.notifier = OrderNotifier()

    yield

    # 关闭时执行
    await database.dispose()
    if redis_client is not None:
        redis_client.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="商品订单与支付对账服务API",
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

# GZip压缩
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """为每个请求生成或透传 X-Request-ID，并写入 request.state"""
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


def _error_response(detail: str, status_code: int, request_id: str | None = None) -> dict:
    body = {"detail": detail}
    if request_id:
        body["request_id"] = request_id
    return body


@app.exception_handler(OrderError)
async def order_exception_handler(request: Request, exc: OrderError):
    """订单领域异常：NotFound 404、库存不足/状态不允许 400、冲突 409"""
    rid = getattr(request.state, "request_id", None)
    body = _error_response(detail=exc.message, status_code=exc.status_code, request_id=rid)
    body.update({k: v for k, v in exc.to_dict().items() if v is not None})
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """统一 HTTP 异常响应格式"""
    rid = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_response(
            detail=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
            status_code=exc.status_code,
            request_id=rid,
        ),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """422 校验错误统一格式"""
    rid = getattr(request.state, "request_id", None)
    errs = exc.errors()
    detail = errs[0].get("msg", "请求参数校验失败") if errs else "请求参数校验失败"
    body = _error_response(detail=detail, status_code=422, request_id=rid)
    body["errors"] = jsonable_encoder(errs, custom_encoder={Exception: str})
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """未捕获异常统一格式"""
    rid = getattr(request.state, "request_id", None)
    logger.exception("未处理的异常 request_id=%s: %s", rid, exc)
    return JSONResponse(
        status_code=500,
        content=_error_response(
            detail="服务器内部错误",
            status_code=500,
            request_id=rid,
        ),
    )


# 注册路由
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    """根路径"""
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check(request: Request):
    """健康检查：返回各依赖连通状态"""
    db_ok, db_msg = await check_db(getattr(request.app.state, "database", None))
    redis_ok, redis_msg = await asyncio.to_thread(check_redis, getattr(request.app.state, "redis", None))
    all_ok = db_ok and redis_ok
    return JSONResponse(
        content={
            "status": "healthy" if all_ok else "degraded",
            "service": "order-api",
            "dependencies": {
                "database": {"ok": db_ok, "message": db_msg},
                "redis": {"ok": redis_ok, "message": redis_msg},
            },
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_excludes=["**/__pycache__/**", "**/*.pyc"],
    )
