"""Basket valuation and per-asset pricing curves.

Ordinary assets (PRODUCT/COMMON/USD categories) are priced from the feed with a
three-zone incentive curve around their target allocation. The reserve asset
is priced by constant product against the total ordinary value ``T`` and the
share token pro rata to ``T`` over circulating supply.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging

from .config import PricingConfig
from .core import (
    Asset,
    AssetRecord,
    BALANCE_FEE_DENOMINATOR,
    PriceType,
    Tier,
    Valuation,
    circulating_supply,
    validate_tiers,
)
from .errors import InsufficientBalance, LengthMismatch, PricingError
from .feed import PriceFeedGateway
from .fixed_point import ONE, from_usd, mul_div, scale, to_usd

logger = logging.getLogger(__name__)

# Neutral band half-width as a fraction of target value (1/50 = 2%).
MARGIN_DIVISOR = 50


@dataclass(frozen=True)
class Aggregate:
    total_value: int
    valuation_a: Valuation
    valuation_b: Valuation


def _empty() -> Valuation:
    return Valuation(price=0, value=0)


def aggregate(
    assets: Sequence[Asset],
    balances: Sequence[int],
    index_a: int,
    index_b: int,
    total_supply: int,
    due_fees: int,
    feed: PriceFeedGateway,
    config: PricingConfig,
) -> Aggregate:
    """Total ordinary value plus valuations for two asset indices."""
    if len(assets) != len(balances):
        raise LengthMismatch(f"{len(assets)} assets but {len(balances)} balances")

    total = 0
    val_a = _empty()
    val_b = _empty()
    reserve_idx: Optional[int] = None
    share_idx: Optional[int] = None
    for idx, asset in enumerate(assets):
        if asset.asset_id == config.reserve_id:
            reserve_idx = idx
            continue
        if asset.asset_id == config.share_id:
            share_idx = idx
            continue
        price = feed.quote(asset, PriceType.RAW)
        value = to_usd(balances[idx], price, asset.decimals)
        total += value
        if idx == index_a:
            val_a = Valuation(price=price, value=value)
        if idx == index_b:
            val_b = Valuation(price=price, value=value)

    for idx in (index_a, index_b):
        if idx not in (reserve_idx, share_idx):
            continue
        asset = assets[idx]
        if idx == reserve_idx:
            # an empty reserve has no instantaneous price until the first deposit
            price = reserve_price(total, balances[idx], asset.decimals) if balances[idx] else 0
        else:
            supply = circulating_supply(total_supply, balances[idx], due_fees)
            price = share_price(total, supply, asset.decimals)
        valuation = Valuation(price=price, value=to_usd(balances[idx], price, asset.decimals))
        if idx == index_a:
            val_a = valuation
        if idx == index_b:
            val_b = valuation
    return Aggregate(total_value=total, valuation_a=val_a, valuation_b=val_b)


# -----------------------------
# Reserve & share pricing
# -----------------------------
def reserve_price(total_value: int, balance: int, decimals: int = 18) -> int:
    """Instantaneous reserve price ``T / B`` per whole token."""
    if balance <= 0:
        raise InsufficientBalance("reserve balance is empty")
    return mul_div(total_value, scale(decimals), balance)


def reserve_deposit_price(total_value: int, balance: int, amount: int, decimals: int = 18) -> int:
    """Average price of depositing ``amount`` reserve: ``T / (B + amount)``."""
    return reserve_price(total_value, balance + amount, decimals)


def reserve_withdraw_price(total_value: int, balance: int, amount: int, decimals: int = 18) -> int:
    """Average price of withdrawing ``amount`` reserve: ``T / (B - amount)``."""
    if amount >= balance:
        raise InsufficientBalance(f"reserve withdrawal {amount} >= balance {balance}")
    return reserve_price(total_value, balance - amount, decimals)


def reserve_price_for_value_in(total_value: int, balance: int, value_in: int, decimals: int = 18) -> int:
    """Average price when ``value_in`` USD buys reserve out: ``(T + U) / B``."""
    return reserve_price(total_value + value_in, balance, decimals)


def reserve_price_for_value_out(total_value: int, balance: int, value_out: int, decimals: int = 18) -> int:
    """Average price when reserve sold in must fund ``value_out`` USD: ``(T - U) / B``."""
    if value_out >= total_value:
        raise InsufficientBalance(f"requested value {value_out} >= basket value {total_value}")
    return reserve_price(total_value - value_out, balance, decimals)


def share_price(total_value: int, supply: int, decimals: int = 18) -> int:
    """``T`` over circulating supply; one USD per share before the first join."""
    if supply == 0:
        return ONE
    return mul_div(total_value, scale(decimals), supply)


# -----------------------------
# Tiered pricing
# -----------------------------
def target_value(total_value: int, record: AssetRecord, config: PricingConfig) -> int:
    weight_sum = config.weight_sum
    category_total = config.category_total(record.category)
    if weight_sum == 0 or category_total == 0:
        return 0
    category_value = mul_div(total_value, config.category_weight(record.category), weight_sum)
    return mul_div(category_value, record.weight, category_total)


def allocation_zone(value: int, target: int) -> str:
    margin = target // MARGIN_DIVISOR
    if value > target + margin:
        return "overweight"
    if value < target - margin:
        return "underweight"
    return "neutral"


def with_premium(price: int, balance_fee: int) -> int:
    return mul_div(price, BALANCE_FEE_DENOMINATOR + balance_fee, BALANCE_FEE_DENOMINATOR)


def with_discount(price: int, balance_fee: int) -> int:
    return mul_div(price, BALANCE_FEE_DENOMINATOR - balance_fee, BALANCE_FEE_DENOMINATOR)


def tier_price(
    total_value: int,
    asset: Asset,
    record: AssetRecord,
    valuation: Valuation,
    config: PricingConfig,
    feed: PriceFeedGateway,
    is_buy_side: bool,
) -> Tuple[Tier, ...]:
    """Piecewise price curve for an ordinary asset.

    ``is_buy_side`` means the pool is buying the asset (it flows in and its
    value V rises); otherwise the pool is selling it and V falls. Tiers are
    ordered from the asset's current zone in the direction V moves:

    * trades toward target get a reward tier priced with the balance fee,
      bounded by the value needed to reach the neutral band;
    * the neutral band trades at the raw quote, bounded by the band edge;
    * the last tier is unbounded and penalised by the balance fee.

    Capacities are native token amounts measured at the raw price, since the
    allocation itself is measured at raw prices.
    """
    if not record.category.is_tiered:
        raise PricingError(f"{asset.asset_id} is not an ordinary asset")

    target = target_value(total_value, record, config)
    margin = target // MARGIN_DIVISOR
    lower = target - margin
    upper = target + margin
    current = valuation.value
    raw = valuation.price
    fee = config.balance_fee

    tiers: List[Tier] = []

    def bounded(price: int, span: int) -> None:
        capacity = from_usd(span, raw, asset.decimals)
        if capacity > 0:
            tiers.append(Tier(price=price, capacity=capacity))

    if is_buy_side:
        if current < lower:
            bounded(with_premium(feed.quote(asset, PriceType.BUY), fee), lower - current)
        if current < upper:
            bounded(raw, upper - max(current, lower))
        tiers.append(Tier(price=with_discount(feed.quote(asset, PriceType.SELL), fee)))
    else:
        if current > upper:
            bounded(with_discount(feed.quote(asset, PriceType.SELL), fee), current - upper)
        if current > lower:
            bounded(raw, min(current, upper) - lower)
        tiers.append(Tier(price=with_premium(feed.quote(asset, PriceType.BUY), fee)))

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "[TIER] %s side=%s value=%d target=%d margin=%d tiers=%s",
            asset.asset_id,
            "buy" if is_buy_side else "sell",
            current,
            target,
            margin,
            [(t.price, t.capacity) for t in tiers],
        )
    return validate_tiers(tuple(tiers))
