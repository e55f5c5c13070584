from __future__ import annotations

import pytest

from cvwatch_extractor import HeaderMap
from cvwatch_normalize import PriceTable


@pytest.fixture
def header_map() -> HeaderMap:
    return HeaderMap()


@pytest.fixture
def prices() -> PriceTable:
    return PriceTable.from_dict({
        "byAdId": {"A1": 1000, "A2": 2500},
        "byAdName": {"Ad Three": 800},
        "defaultUnitPrice": 0,
    })


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch):
    monkeypatch.delenv("CV_LOG_LEVEL", raising=False)
    monkeypatch.delenv("CV_LOG_POLICY", raising=False)
