"""Quote source contract plus in-memory and last-known-price implementations."""

from __future__ import annotations

import logging
import threading
from decimal import Decimal
from typing import Iterable, Mapping, MutableMapping, Protocol

from .models import to_decimal

logger = logging.getLogger(__name__)


class QuoteSource(Protocol):
    """Pluggable live price provider.

    ``get_price`` returns ``None`` when an instrument is unavailable and
    ``get_prices`` leaves such instruments out of its result.
    """

    def get_price(self, instrument_id: str) -> Decimal | None:
        ...

    def get_prices(self, instrument_ids: Iterable[str]) -> dict[str, Decimal]:
        ...


class InMemoryQuoteSource:
    """Simple quote source for tests, demos and offline fallback data."""

    def __init__(self, prices: Mapping[str, Decimal | str | float] | None = None):
        self._prices: dict[str, Decimal] = {}
        self._lock = threading.Lock()
        for instrument_id, price in (prices or {}).items():
            self.set_price(instrument_id, price)

    def set_price(self, instrument_id: str, price: Decimal | str | float) -> None:
        value = to_decimal(price)
        if value <= 0:
            raise ValueError(f"Price for {instrument_id} must be positive")
        with self._lock:
            self._prices[instrument_id] = value

    def remove(self, instrument_id: str) -> None:
        with self._lock:
            self._prices.pop(instrument_id, None)

    def get_price(self, instrument_id: str) -> Decimal | None:
        with self._lock:
            return self._prices.get(instrument_id)

    def get_prices(self, instrument_ids: Iterable[str]) -> dict[str, Decimal]:
        with self._lock:
            return {i: self._prices[i] for i in instrument_ids if i in self._prices}


class LastKnownQuoteSource:
    """Wrap a quote source and serve the last good price when it goes quiet."""

    def __init__(self, delegate: QuoteSource):
        self.delegate = delegate
        self._last_known: MutableMapping[str, Decimal] = {}
        self._lock = threading.Lock()

    def _remember(self, instrument_id: str, price: Decimal | None) -> Decimal | None:
        with self._lock:
            if price is not None and price > 0:
                self._last_known[instrument_id] = price
                return price
            cached = self._last_known.get(instrument_id)
        if cached is not None:
            logger.debug("Serving last known price for %s", instrument_id)
        return cached

    def get_price(self, instrument_id: str) -> Decimal | None:
        return self._remember(instrument_id, self.delegate.get_price(instrument_id))

    def get_prices(self, instrument_ids: Iterable[str]) -> dict[str, Decimal]:
        wanted = list(instrument_ids)
        fresh = self.delegate.get_prices(wanted)
        result: dict[str, Decimal] = {}
        for instrument_id in wanted:
            price = self._remember(instrument_id, fresh.get(instrument_id))
            if price is not None:
                result[instrument_id] = price
        return result

    def last_known(self, instrument_id: str) -> Decimal | None:
        with self._lock:
            return self._last_known.get(instrument_id)


__all__ = ["InMemoryQuoteSource", "LastKnownQuoteSource", "QuoteSource"]
