from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

import pytest

from pro_billing.core.config import get_settings
from pro_billing.services import billing_emails

ENDS_AT = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)


class _Response:
    def __init__(self, *, fail: bool = False) -> None:
        self._fail = fail

    def raise_for_status(self) -> None:
        if self._fail:
            raise RuntimeError("email api rejected request")


class _Client:
    def __init__(self, calls: list[dict[str, Any]], *, fail: bool = False) -> None:
        self._calls = calls
        self._fail = fail

    async def __aenter__(self) -> "_Client":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        return None

    async def post(
        self,
        url: str,
        json: dict[str, object],
        headers: dict[str, str],
    ) -> _Response:
        self._calls.append({"url": url, "json": json, "headers": headers})
        return _Response(fail=self._fail)


def _patch_http_client(
    monkeypatch: pytest.MonkeyPatch,
    calls: list[dict[str, Any]],
    *,
    fail: bool = False,
) -> None:
    def factory(timeout: float) -> _Client:  # noqa: ARG001
        return _Client(calls, fail=fail)

    monkeypatch.setattr(billing_emails.httpx, "AsyncClient", factory)


@pytest.fixture
def email_api(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("EMAIL_API_URL", "https://mail.example.test/send")
    monkeypatch.setenv("EMAIL_API_KEY", "mail-key")
    get_settings.cache_clear()

    async def resolver(user_id: UUID) -> str | None:
        return f"{user_id}@example.test"

    billing_emails.set_recipient_resolver(resolver)
    yield
    billing_emails.set_recipient_resolver(None)


@pytest.mark.asyncio
async def test_email_skipped_without_api_url(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(monkeypatch, calls)

    sent = await billing_emails.send_trial_started_email(user_id=uuid4(), trial_ends_at=ENDS_AT)

    assert sent is False
    assert calls == []


@pytest.mark.asyncio
async def test_trial_started_email_is_posted(monkeypatch: pytest.MonkeyPatch, email_api) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(monkeypatch, calls)
    user_id = uuid4()

    sent = await billing_emails.send_trial_started_email(user_id=user_id, trial_ends_at=ENDS_AT)

    assert sent is True
    assert calls[0]["url"] == "https://mail.example.test/send"
    assert calls[0]["headers"] == {"Authorization": "Bearer mail-key"}
    body = calls[0]["json"]
    assert body["to"] == [{"email": f"{user_id}@example.test"}]
    assert body["tags"] == {"template": "trial_started"}
    assert "2024-01-15 09:30 UTC" in body["text"]
    assert "/settings/billing" in body["text"]


@pytest.mark.asyncio
async def test_subscription_ended_subject_depends_on_status(
    monkeypatch: pytest.MonkeyPatch,
    email_api,
) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(monkeypatch, calls)

    await billing_emails.send_subscription_ended_email(
        user_id=uuid4(),
        ended_at=ENDS_AT,
        ended_status="trial",
    )
    await billing_emails.send_subscription_ended_email(
        user_id=uuid4(),
        ended_at=ENDS_AT,
        ended_status="active",
    )

    assert calls[0]["json"]["subject"] == "Your Pro trial has ended"
    assert calls[1]["json"]["subject"] == "Your Pro plan has ended"


@pytest.mark.asyncio
async def test_delivery_failure_returns_false(monkeypatch: pytest.MonkeyPatch, email_api) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(monkeypatch, calls, fail=True)

    sent = await billing_emails.send_cancel_scheduled_email(user_id=uuid4(), ends_at=ENDS_AT)

    assert sent is False
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_unknown_recipient_is_skipped(monkeypatch: pytest.MonkeyPatch, email_api) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(monkeypatch, calls)

    async def no_recipient(user_id: UUID) -> str | None:  # noqa: ARG001
        return None

    billing_emails.set_recipient_resolver(no_recipient)

    sent = await billing_emails.send_trial_expiring_soon_email(
        user_id=uuid4(),
        trial_ends_at=ENDS_AT,
    )

    assert sent is False
    assert calls == []


@pytest.mark.asyncio
async def test_dispatch_notification_runs_in_background() -> None:
    done = asyncio.Event()

    async def notification() -> None:
        done.set()

    billing_emails.dispatch_notification(notification())
    await asyncio.wait_for(done.wait(), timeout=1.0)
    for _ in range(3):
        await asyncio.sleep(0)

    assert billing_emails._background_tasks == set()


@pytest.mark.asyncio
async def test_dispatch_notification_swallows_failures() -> None:
    async def failing() -> None:
        raise RuntimeError("boom")

    billing_emails.dispatch_notification(failing())
    for _ in range(3):
        await asyncio.sleep(0)

    assert billing_emails._background_tasks == set()
