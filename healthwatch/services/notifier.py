"""
通知分发服务模块。

负责渲染告警内容并并发发送到所有已配置的通知渠道（邮件 / Slack / Telegram）。
每个渠道都是 (subject, body) -> bool 的异步函数：发送失败只记录日志并返回 False，
任一渠道失败都不会阻塞或影响其他渠道。未配置的渠道不会被注册，静默跳过。
"""
import asyncio
import functools
import html
import logging
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Awaitable, Callable, Optional, Sequence

import aiosmtplib
import httpx

from healthwatch.core.config import ChannelConfig
from healthwatch.models.health_log import HealthStatus
from healthwatch.schemas.health import CheckResult

logger = logging.getLogger(__name__)

# 渠道请求超时（秒）
CHANNEL_TIMEOUT = 10

TELEGRAM_API_BASE = "https://api.telegram.org"


@dataclass(frozen=True)
class Channel:
    """已配置的通知渠道。"""
    name: str
    send: Callable[[str, str], Awaitable[bool]]


# ---------------------------------------------------------------------------
# 告警内容渲染
# ---------------------------------------------------------------------------

def render_alert(result: CheckResult, now: datetime) -> tuple[str, str]:
    """渲染告警，返回 (subject, body)。可选字段仅在存在时输出。"""
    emoji = "🔴" if result.status is HealthStatus.CRITICAL else "🟡"
    subject = f"{emoji} [Health Monitor] {result.status.value}: {result.service}"
    lines = [
        f"Service: {result.service}",
        f"Status: {result.status.value}",
        f"Category: {result.category.value}",
        f"Time: {now.isoformat()}",
    ]
    if result.url is not None:
        lines.append(f"URL: {result.url}")
    if result.status_code is not None:
        lines.append(f"HTTP Status: {result.status_code}")
    if result.latency_ms is not None:
        lines.append(f"Latency: {result.latency_ms}ms")
    if result.error_message:
        lines.append(f"Error: {result.error_message}")
    return subject, "\n".join(lines)


# ---------------------------------------------------------------------------
# 邮件
# ---------------------------------------------------------------------------

async def send_email(config: ChannelConfig, subject: str, body: str) -> bool:
    """通过 SMTP 发送纯文本 + HTML 备选正文的告警邮件。"""
    msg = MIMEMultipart("alternative")
    msg["From"] = config.smtp_from or config.smtp_user
    msg["To"] = config.email_address
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "plain", "utf-8"))
    msg.attach(MIMEText(f'<pre style="font-family:monospace">{html.escape(body)}</pre>', "html", "utf-8"))

    kwargs = {
        "hostname": config.smtp_host,
        "port": config.smtp_port,
        "username": config.smtp_user or None,
        "password": config.smtp_password or None,
        "timeout": CHANNEL_TIMEOUT,
    }
    if config.smtp_secure:
        kwargs["use_tls"] = True
    else:
        kwargs["start_tls"] = True

    try:
        await aiosmtplib.send(msg, **kwargs)
    except (aiosmtplib.SMTPException, OSError) as e:
        logger.warning(f"Email alert failed: {e}")
        return False
    logger.info(f"Email alert sent: {subject}")
    return True


# ---------------------------------------------------------------------------
# Slack / Telegram Webhook
# ---------------------------------------------------------------------------

async def _post_json(
    url: str, payload: dict, client: Optional[httpx.AsyncClient] = None
) -> int:
    """POST JSON 并返回状态码；未传入客户端时临时创建。"""
    if client is not None:
        resp = await client.post(url, json=payload, timeout=CHANNEL_TIMEOUT)
        return resp.status_code
    async with httpx.AsyncClient(timeout=CHANNEL_TIMEOUT) as tmp:
        resp = await tmp.post(url, json=payload)
    return resp.status_code


async def send_slack(
    config: ChannelConfig, subject: str, body: str, client: Optional[httpx.AsyncClient] = None
) -> bool:
    """发送 Slack Incoming Webhook 消息。"""
    payload = {"text": f"{subject}\n```{body}```"}
    try:
        code = await _post_json(config.chat_webhook_url, payload, client)
    except httpx.HTTPError as e:
        logger.warning(f"Slack alert failed: {e}")
        return False
    if not 200 <= code < 300:
        logger.warning(f"Slack alert failed: HTTP {code}")
        return False
    logger.info("Slack alert sent.")
    return True


async def send_telegram(
    config: ChannelConfig, subject: str, body: str, client: Optional[httpx.AsyncClient] = None
) -> bool:
    """通过 Telegram Bot API sendMessage 发送 HTML 格式消息。"""
    url = f"{TELEGRAM_API_BASE}/bot{config.bot_token}/sendMessage"
    payload = {
        "chat_id": config.chat_id,
        "text": f"<b>{html.escape(subject)}</b>\n<pre>{html.escape(body)}</pre>",
        "parse_mode": "HTML",
    }
    try:
        code = await _post_json(url, payload, client)
    except httpx.HTTPError as e:
        # 异常信息中含有 bot token，不直接输出
        logger.warning(f"Telegram alert failed: {type(e).__name__}")
        return False
    if not 200 <= code < 300:
        logger.warning(f"Telegram alert failed: HTTP {code}")
        return False
    logger.info("Telegram alert sent.")
    return True


# ---------------------------------------------------------------------------
# 渠道注册与分发
# ---------------------------------------------------------------------------

def build_channels(
    config: ChannelConfig, client: Optional[httpx.AsyncClient] = None
) -> list[Channel]:
    """根据配置构建渠道列表，只包含字段齐全的渠道。"""
    channels: list[Channel] = []
    if config.email_enabled:
        channels.append(Channel("email", functools.partial(send_email, config)))
    if config.chat_enabled:
        channels.append(Channel("slack", functools.partial(send_slack, config, client=client)))
    if config.telegram_enabled:
        channels.append(Channel("telegram", functools.partial(send_telegram, config, client=client)))
    return channels


async def dispatch_to_channels(
    channels: Sequence[Channel], subject: str, body: str
) -> dict[str, bool]:
    """
    并发发送到全部渠道，等待全部完成

    单个渠道的失败（返回 False 或抛出异常）只记录日志，不取消其他渠道，也不向调用方抛出。

    Returns:
        dict[str, bool]: 渠道名 → 是否发送成功
    """
    outcomes = await asyncio.gather(
        *(channel.send(subject, body) for channel in channels),
        return_exceptions=True,
    )
    delivered: dict[str, bool] = {}
    for channel, outcome in zip(channels, outcomes):
        if isinstance(outcome, Exception):
            logger.error(f"Notification channel {channel.name} raised: {outcome}")
            delivered[channel.name] = False
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            delivered[channel.name] = bool(outcome)
    failed = [name for name, ok in delivered.items() if not ok]
    if failed:
        logger.warning(f"Alert delivery failed on channel(s): {', '.join(failed)}")
    return delivered
