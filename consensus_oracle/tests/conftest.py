"""Shared fixtures for the consensus oracle test suite."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from consensus_oracle.src.adapters.base import AdapterError, BaseAdapter
from consensus_oracle.src.OracleTypes import OracleCategory, OracleDataPoint


class FakeAdapter(BaseAdapter):
    """In-memory adapter returning a canned value or failure."""

    def __init__(
        self,
        name: str,
        categories: set[OracleCategory],
        value: dict[str, Any] | None = None,
        confidence: float | None = None,
        error: str | None = None,
        exception: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.name = name
        self.categories = frozenset(categories)
        self.value = value or {}
        self.confidence = confidence
        self.error = error
        self.exception = exception
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    async def _observe(self, parameters: dict[str, Any]) -> OracleDataPoint:
        self.calls.append(parameters)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exception is not None:
            raise self.exception
        if self.error is not None:
            raise AdapterError(self.error)
        category = next(iter(self.categories))
        return OracleDataPoint(
            source=self.name,
            category=category,
            value=dict(self.value),
            confidence=self.confidence,
        )


@pytest.fixture
def fake_adapter():
    """Factory for FakeAdapter instances."""
    return FakeAdapter


@pytest.fixture
def price_point():
    """Factory for price_feed observations."""

    def _make(
        source: str, price: float, confidence: float | None = None
    ) -> OracleDataPoint:
        return OracleDataPoint(
            source=source,
            category=OracleCategory.PRICE_FEED,
            value={"symbol": "ETH/USD", "price": price, "currency": "USD"},
            confidence=confidence,
        )

    return _make
