"""
应用配置：从环境变量读取配置
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """应用配置类"""

    # 项目根目录
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT.parent / ".env"),  # 从项目根目录读取 .env
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API配置
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Storefront 订单服务"
    CORS_ORIGINS: List[str] = ["*"]  # CORS允许的源

    # 数据库配置
    DATABASE_URL: str = ""
    DATABASE_ECHO: bool = False

    # Redis配置
    REDIS_URL: str = "redis://localhost:6379/0"

    # 缓存配置（使用同一 Redis，key 前缀区分）
    CACHE_ENABLED: bool = True
    CACHE_KEY_PREFIX: str = "cache:"
    CACHE_TTL_STATS: int = 60          # 订单统计 60 秒

    # Celery配置（不填则与 REDIS_URL 一致，只维护一份 Redis 地址即可）
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""

    # 安全配置（令牌由外部认证服务签发，这里只做校验）
    JWT_SECRET_KEY: str = "your-jwt-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080

    # Paystack 支付网关
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_CURRENCY: str = "GHS"
    PAYSTACK_TIMEOUT: float = 30.0
    FRONTEND_URL: str = "http://localhost:3000"  # 支付完成后的回跳地址前缀

    # 邮件（MailerSend）
    MAILERSEND_API_KEY: str = ""
    MAILERSEND_API_URL: str = "https://api.mailersend.com/v1"
    MAILERSEND_FROM_EMAIL: str = "orders@romofete.com"

    # 短信（Arkesel）
    ARKESEL_SMS_API_KEY: str = ""
    ARKESEL_SMS_URL: str = "https://sms.arkesel.com/api/v2/sms/send"
    ARKESEL_SMS_SENDER_ID: str = "ROMOFETE"

    # 通知是否投递到 Celery Worker（False 则在请求内直接发送）
    NOTIFICATIONS_USE_CELERY: bool = True

    # 下单限流（按客户端 IP）
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_CHECKOUT_PER_MINUTE: int = 20

    # 操作审计：是否记录订单关键操作到 audit_log 表
    AUDIT_LOG_ENABLED: bool = True

    # 订单列表
    ORDER_LIST_DEFAULT_LIMIT: int = 20
    ORDER_LIST_MAX_LIMIT: int = 100

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Path = PROJECT_ROOT / "logs" / "app.log"

    @property
    def paystack_callback_url(self) -> str:
        """支付回跳地址"""
        return f"{self.FRONTEND_URL.rstrip('/')}/payment/callback"


# 创建全局配置实例
settings = Settings()
