"""Market data collaborator — last price for a symbol.

``MarketDataProvider`` is the interface the trade engine depends on.
``MarketStackProvider`` implements it against MarketStack's end-of-day API.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol

import httpx

from papertrader.config import settings
from papertrader.errors import MarketDataUnavailable
from papertrader.pricing import to_decimal
from papertrader.schemas.market import Quote

logger = logging.getLogger(__name__)

MIN_PRICE = Decimal("0.01")
DATE_LAYOUT_US = "%m/%d/%Y"


class MarketDataProvider(Protocol):
    def get_price(self, symbol: str) -> Quote:
        """Return the latest quote or raise MarketDataUnavailable."""
        ...


class MarketStackProvider:
    """Synchronous MarketStack client. Every failure becomes MarketDataUnavailable."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api_key = settings.MARKETSTACK_API_KEY if api_key is None else api_key
        self._base_url = (base_url or settings.MARKETSTACK_BASE_URL).rstrip("/")
        self._timeout_s = settings.MARKET_DATA_TIMEOUT_SECONDS if timeout_s is None else timeout_s
        self._transport = transport

    def get_price(self, symbol: str) -> Quote:
        if not self._api_key:
            raise MarketDataUnavailable(symbol, "API key not configured")

        try:
            with httpx.Client(transport=self._transport, timeout=float(self._timeout_s)) as client:
                response = client.get(
                    f"{self._base_url}/eod/latest",
                    params={"symbols": symbol, "access_key": self._api_key},
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.warning(f"MarketStack request for {symbol} failed: {e}")
            raise MarketDataUnavailable(symbol, f"request failed: {e.__class__.__name__}") from e

        if response.status_code != 200:
            logger.warning(f"MarketStack returned status {response.status_code} for {symbol}")
            raise MarketDataUnavailable(symbol, f"API returned status {response.status_code}")

        try:
            entries = response.json().get("data") or []
        except (ValueError, AttributeError) as e:
            raise MarketDataUnavailable(symbol, "unreadable response") from e
        if not entries:
            raise MarketDataUnavailable(symbol, "no data found")

        entry = entries[0]
        try:
            price = to_decimal(entry["close"])
        except (KeyError, TypeError, ValueError) as e:
            raise MarketDataUnavailable(symbol, "response has no usable close price") from e
        if price < MIN_PRICE:
            raise MarketDataUnavailable(symbol, f"price {price} below minimum {MIN_PRICE}")

        quote = Quote(
            symbol=entry.get("symbol") or symbol,
            price=price,
            as_of_date=_format_date(entry.get("date")),
        )
        logger.info(f"MarketStack quote for {symbol}: {quote.price} ({quote.as_of_date})")
        return quote


def _format_date(raw: Optional[str]) -> str:
    """MarketStack dates look like 2024-01-05T00:00:00+0000; keep MM/DD/YYYY."""
    if not raw:
        return ""
    for layout in ("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%d"):
        try:
            return datetime.strptime(raw, layout).strftime(DATE_LAYOUT_US)
        except ValueError:
            continue
    return raw
