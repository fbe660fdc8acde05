"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理 HealthWatch 的所有配置项，支持从 .env 文件和环境变量读取。
涵盖数据库、Redis、探测目标、重试、告警冷却、调度周期和通知渠道等配置。

Uses Pydantic Settings to manage all HealthWatch configuration items, read from
.env files and environment variables. Covers the database, Redis, the probed target,
retry, alert cooldown, scheduling periods and notification channels.
"""
import logging
import secrets
from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写），支持 .env 文件加载。
    进程启动时解析一次，运行期间不再重新读取。

    Field names map to same-named environment variables (case insensitive) and are
    resolved once at startup, never re-read per call.
    """

    # 数据库配置 (Database Configuration)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "healthwatch"
    postgres_user: str = "healthwatch"
    postgres_password: str = "healthwatch_dev_password"
    database_url_override: str = ""  # 非空时直接使用该 URL (Used verbatim when set)

    # Redis 配置 (Redis Configuration)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_socket_timeout_seconds: float = 2.0  # 缓存尽力而为，Redis 卡住时快速失败 (Fail fast on a stuck Redis)

    # 被探测的目标应用 (Probed Target Application)
    target_base_url: str = "http://localhost:3000"

    # 探测参数 (Probe Tuning)
    probe_timeout_seconds: float = 10.0  # 单个探测的超时时间 (Per-probe timeout)
    slow_latency_ms: int = 2000  # 超过该延迟视为 WARNING (Latency above this is WARNING)
    details_max_chars: int = 500  # 失败时保存的响应体长度 (Response body kept on failure)

    # 重试配置 (Retry Configuration)
    max_retries: int = 3
    retry_delay_seconds: float = 5.0

    # 告警配置 (Alerting Configuration)
    alert_cooldown_minutes: int = 30

    # 调度配置 (Scheduling Configuration)
    check_interval_minutes: int = 5
    log_retention_days: int = 30
    retention_hour_utc: int = Field(default=0, ge=0, le=23)  # 每日清理时间 (Daily cleanup hour, UTC)
    sla_day_of_month: int = Field(default=1, ge=1, le=28)  # 月报生成日 (Monthly report day)
    sla_hour_utc: int = Field(default=1, ge=0, le=23)  # 月报生成时间 (Monthly report hour, UTC)
    scheduler_enabled: bool = True  # API 进程内是否启动调度循环 (Run loops inside the API process)

    # 通知渠道配置 (Notification Channel Configuration)
    alert_email: str = ""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_secure: bool = False
    slack_webhook_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    # 管理接口认证 (Admin API Authentication)
    admin_api_token: str = ""

    @property
    def database_url(self) -> str:
        """
        构造异步数据库连接 URL (Build Async Database Connection URL)

        优先使用 DATABASE_URL_OVERRIDE，否则根据 PostgreSQL 参数生成 asyncpg 连接串。
        """
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def redis_url(self) -> str:
        """构造 Redis 连接 URL，默认使用 0 号库。"""
        return f"redis://{self.redis_host}:{self.redis_port}/0"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@dataclass(frozen=True)
class ChannelConfig:
    """
    通知渠道配置 (Notification Channel Configuration)

    每个渠道的字段都是可选的，缺失即表示该渠道未启用（静默跳过，不报错）。
    """
    email_address: str = ""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_secure: bool = False
    chat_webhook_url: str = ""
    bot_token: str = ""
    chat_id: str = ""

    @classmethod
    def from_settings(cls, s: "Settings") -> "ChannelConfig":
        return cls(
            email_address=s.alert_email or s.smtp_from,
            smtp_host=s.smtp_host,
            smtp_port=s.smtp_port,
            smtp_user=s.smtp_user,
            smtp_password=s.smtp_password,
            smtp_from=s.smtp_from,
            smtp_secure=s.smtp_secure,
            chat_webhook_url=s.slack_webhook_url,
            bot_token=s.telegram_bot_token,
            chat_id=s.telegram_chat_id,
        )

    @property
    def email_enabled(self) -> bool:
        return bool(self.email_address)

    @property
    def chat_enabled(self) -> bool:
        return bool(self.chat_webhook_url)

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)


# 全局配置实例 (Global Configuration Instance)
settings = Settings()

# 管理接口令牌安全检查：未设置时生成随机令牌并警告
if not settings.admin_api_token:
    settings.admin_api_token = secrets.token_urlsafe(32)
    logger.warning(
        "ADMIN_API_TOKEN not set, using auto-generated random token. "
        "Admin endpoints are unreachable until ADMIN_API_TOKEN is configured."
    )
