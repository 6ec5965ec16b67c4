from __future__ import annotations

import pytest

from pro_billing.core.config import get_settings

TEST_HASH_SECRET = "test-billing-hash-secret"


@pytest.fixture(autouse=True)
def billing_test_settings(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("BILLING_HASH_SECRET", TEST_HASH_SECRET)
    monkeypatch.setenv("BILLING_HASH_SECRETS", "{}")
    monkeypatch.setenv("EMAIL_API_URL", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
