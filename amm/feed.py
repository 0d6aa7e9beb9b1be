"""Price feed gateway: resolves listed assets to 18-decimal USD quotes."""
from __future__ import annotations
from typing import Dict, Optional, Protocol, Tuple, Union
import logging

from .core import Asset, PriceType
from .errors import CyclicPriceReference, NoPriceSource
from .fixed_point import ONE, mul_div

logger = logging.getLogger(__name__)

USD_SYMBOL = "USD"

# Longest denominator chain followed before giving up, e.g. TOKEN -> ETH -> USD is 1 hop.
MAX_PRICE_DEPTH = 4

Quote = Tuple[int, Optional[str]]


class PriceSource(Protocol):
    def quote(self, symbol: str, price_type: PriceType) -> Quote:
        """Return (price, denominator symbol); ``None`` or "USD" means USD."""
        ...


class StaticPriceSource:
    """In-process price source with a symmetric bid/ask spread."""

    def __init__(self, spread_bps: int = 0) -> None:
        self.spread_bps = int(spread_bps)
        self.prices: Dict[str, int] = {}
        self.denominators: Dict[str, Optional[str]] = {}

    def set_price(self, symbol: str, price: int, denominator: Optional[str] = None) -> None:
        self.prices[symbol] = max(0, int(price))
        self.denominators[symbol] = denominator

    def quote(self, symbol: str, price_type: PriceType) -> Quote:
        if symbol not in self.prices:
            raise NoPriceSource(f"no quote for {symbol}")
        raw = self.prices[symbol]
        if price_type == PriceType.BUY:
            raw = mul_div(raw, 10_000 + self.spread_bps, 10_000)
        elif price_type == PriceType.SELL:
            raw = mul_div(raw, 10_000 - self.spread_bps, 10_000)
        return raw, self.denominators.get(symbol)


class PriceFeedGateway:
    def __init__(self) -> None:
        self.sources: Dict[str, PriceSource] = {}

    def register_source(self, symbol: str, source: PriceSource) -> None:
        self.sources[symbol] = source

    def remove_source(self, symbol: str) -> None:
        self.sources.pop(symbol, None)

    def has_source(self, symbol: str) -> bool:
        return symbol in self.sources

    def _quote_once(self, symbol: str, price_type: PriceType) -> Quote:
        source = self.sources.get(symbol)
        if source is None:
            raise NoPriceSource(f"no price source registered for {symbol}")
        return source.quote(symbol, price_type)

    def quote(self, asset: Union[Asset, str], price_type: PriceType = PriceType.RAW) -> int:
        """USD price per whole token, following denominator quotes until USD.

        Only the first hop uses ``price_type``; denominators are always read RAW.
        """
        symbol = asset.symbol if isinstance(asset, Asset) else asset
        price, denominator = self._quote_once(symbol, price_type)
        seen = {symbol}
        depth = 0
        while denominator is not None and denominator != USD_SYMBOL:
            if denominator in seen:
                raise CyclicPriceReference(f"{symbol} price chain revisits {denominator}")
            depth += 1
            if depth > MAX_PRICE_DEPTH:
                raise CyclicPriceReference(
                    f"{symbol} price chain exceeds {MAX_PRICE_DEPTH} hops"
                )
            seen.add(denominator)
            denominator_price, next_denominator = self._quote_once(denominator, PriceType.RAW)
            price = mul_div(price, denominator_price, ONE)
            denominator = next_denominator
        if price == 0:
            raise NoPriceSource(f"{symbol} resolved to a zero price")
        if depth and logger.isEnabledFor(logging.DEBUG):
            logger.debug("[FEED] %s %s resolved via %d hop(s) -> %d", symbol, price_type.value, depth, price)
        return price
