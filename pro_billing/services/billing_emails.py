from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from datetime import datetime
from typing import Any
from uuid import UUID

import httpx
import structlog

from pro_billing.core.config import get_settings

logger = structlog.get_logger(__name__)

RecipientResolver = Callable[[UUID], Awaitable[str | None]]

_recipient_resolver: RecipientResolver | None = None
_background_tasks: set[asyncio.Task[Any]] = set()


def set_recipient_resolver(resolver: RecipientResolver | None) -> None:
    """Register how user ids map to e-mail addresses; users live outside this service."""
    global _recipient_resolver
    _recipient_resolver = resolver


def _format_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")


def _billing_url() -> str:
    return f"{get_settings().app_base_url.rstrip('/')}/settings/billing"


async def _send_email(
    *,
    user_id: UUID,
    template: str,
    subject: str,
    text: str,
) -> bool:
    settings = get_settings()
    if not settings.email_api_url:
        logger.info("billing_email_skipped", template=template, reason="email_api_not_configured")
        return False
    if _recipient_resolver is None:
        logger.info("billing_email_skipped", template=template, reason="no_recipient_resolver")
        return False

    try:
        recipient = await _recipient_resolver(user_id)
        if not recipient:
            logger.info(
                "billing_email_skipped",
                template=template,
                user_id=str(user_id),
                reason="recipient_unknown",
            )
            return False

        headers = {}
        if settings.email_api_key:
            headers["Authorization"] = f"Bearer {settings.email_api_key}"
        body = {
            "from": {
                "email": settings.email_sender_address,
                "name": settings.email_sender_name,
            },
            "to": [{"email": recipient}],
            "subject": subject,
            "text": text,
            "tags": {"template": template},
        }
        async with httpx.AsyncClient(timeout=settings.email_timeout_seconds) as client:
            response = await client.post(settings.email_api_url, json=body, headers=headers)
            response.raise_for_status()
    except Exception:
        logger.exception("billing_email_delivery_failed", template=template, user_id=str(user_id))
        return False

    logger.info("billing_email_sent", template=template, user_id=str(user_id))
    return True


async def send_trial_started_email(*, user_id: UUID, trial_ends_at: datetime) -> bool:
    return await _send_email(
        user_id=user_id,
        template="trial_started",
        subject="Your Pro trial has started",
        text=(
            "Your Pro trial is active until "
            f"{_format_date(trial_ends_at)}.\n\nManage your plan: {_billing_url()}"
        ),
    )


async def send_cancel_scheduled_email(*, user_id: UUID, ends_at: datetime) -> bool:
    return await _send_email(
        user_id=user_id,
        template="cancel_scheduled",
        subject="Your Pro plan will not renew",
        text=(
            f"Your Pro access stays active until {_format_date(ends_at)} and then ends.\n\n"
            f"Changed your mind? Resume here: {_billing_url()}"
        ),
    )


async def send_subscription_ended_email(
    *,
    user_id: UUID,
    ended_at: datetime,
    ended_status: str,
) -> bool:
    subject = "Your Pro trial has ended" if ended_status == "trial" else "Your Pro plan has ended"
    return await _send_email(
        user_id=user_id,
        template="subscription_ended",
        subject=subject,
        text=(
            f"Your Pro access ended on {_format_date(ended_at)}.\n\n"
            f"See your options: {_billing_url()}"
        ),
    )


async def send_trial_expiring_soon_email(*, user_id: UUID, trial_ends_at: datetime) -> bool:
    return await _send_email(
        user_id=user_id,
        template="trial_expiring_soon",
        subject="Your Pro trial ends soon",
        text=(
            f"Your Pro trial ends on {_format_date(trial_ends_at)}.\n\n"
            f"Keep Pro: {_billing_url()}"
        ),
    )


def _on_notification_done(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "billing_notification_failed",
            error_type=type(exc).__name__,
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def dispatch_notification(notification: Coroutine[Any, Any, Any]) -> None:
    """Run a notification in the background without awaiting it."""
    task = asyncio.get_running_loop().create_task(notification)
    _background_tasks.add(task)
    task.add_done_callback(_on_notification_done)
