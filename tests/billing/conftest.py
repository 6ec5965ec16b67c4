from __future__ import annotations

import pytest

from tests.billing.fake_store import FakeBillingStore


@pytest.fixture
def billing_store(monkeypatch: pytest.MonkeyPatch) -> FakeBillingStore:
    store = FakeBillingStore()
    store.install(monkeypatch)
    return store
