"""Walks tier curves to settle trade amounts and derives the protocol fee."""
from __future__ import annotations
from typing import List, Tuple

from .config import PricingConfig
from .core import Asset, SwapKind, SwapRequest, Tier, TradeOutcome, Valuation, validate_tiers
from .fixed_point import ONE, from_usd, from_usd_up, mul_div, mul_div_up, scale, to_usd


def value_given_in(tiers: Tuple[Tier, ...], amount: int, decimals: int) -> Tuple[int, Tuple[int, ...]]:
    """USD value of selling ``amount`` into ``tiers``, plus the amount each tier absorbed."""
    remaining = amount
    value = 0
    consumed: List[int] = []
    for tier in tiers:
        if remaining == 0:
            break
        take = remaining if tier.unbounded else min(remaining, tier.capacity)
        value += to_usd(take, tier.price, decimals)
        consumed.append(take)
        remaining -= take
    return value, tuple(consumed)


def value_given_out(tiers: Tuple[Tier, ...], amount: int, decimals: int) -> Tuple[int, Tuple[int, ...]]:
    """USD value owed for taking ``amount`` out of ``tiers``, rounded up."""
    remaining = amount
    value = 0
    consumed: List[int] = []
    for tier in tiers:
        if remaining == 0:
            break
        take = remaining if tier.unbounded else min(remaining, tier.capacity)
        value += mul_div_up(take, tier.price, scale(decimals))
        consumed.append(take)
        remaining -= take
    return value, tuple(consumed)


def spend_value(tiers: Tuple[Tier, ...], value: int, decimals: int, round_up: bool = False) -> Tuple[int, Tuple[int, ...]]:
    """Token amount that ``value`` USD buys across ``tiers``."""
    convert = from_usd_up if round_up else from_usd
    remaining = value
    amount = 0
    consumed: List[int] = []
    for tier in tiers:
        if remaining == 0:
            break
        if tier.unbounded:
            take, spent = convert(remaining, tier.price, decimals), remaining
        else:
            cap_value = to_usd(tier.capacity, tier.price, decimals)
            if remaining <= cap_value:
                take, spent = convert(remaining, tier.price, decimals), remaining
            else:
                take, spent = tier.capacity, cap_value
        amount += take
        consumed.append(take)
        remaining -= spent
    return amount, tuple(consumed)


def walk_given_in(
    in_tiers: Tuple[Tier, ...],
    out_tiers: Tuple[Tier, ...],
    in_amount: int,
    in_decimals: int = 18,
    out_decimals: int = 18,
) -> TradeOutcome:
    validate_tiers(in_tiers)
    validate_tiers(out_tiers)
    value, consumed_in = value_given_in(in_tiers, in_amount, in_decimals)
    out_amount, consumed_out = spend_value(out_tiers, value, out_decimals)
    return TradeOutcome(
        amount_in=in_amount,
        amount_out=out_amount,
        value=value,
        consumed_in=consumed_in,
        consumed_out=consumed_out,
    )


def walk_given_out(
    in_tiers: Tuple[Tier, ...],
    out_tiers: Tuple[Tier, ...],
    out_amount: int,
    in_decimals: int = 18,
    out_decimals: int = 18,
) -> TradeOutcome:
    """Inverse walk: the input needed to take ``out_amount``, rounded in the pool's favour."""
    validate_tiers(in_tiers)
    validate_tiers(out_tiers)
    value, consumed_out = value_given_out(out_tiers, out_amount, out_decimals)
    in_amount, consumed_in = spend_value(in_tiers, value, in_decimals, round_up=True)
    return TradeOutcome(
        amount_in=in_amount,
        amount_out=out_amount,
        value=value,
        consumed_in=consumed_in,
        consumed_out=consumed_out,
    )


def convert(
    in_tiers: Tuple[Tier, ...],
    out_tiers: Tuple[Tier, ...],
    in_amount: int,
    in_decimals: int = 18,
    out_decimals: int = 18,
) -> int:
    return walk_given_in(in_tiers, out_tiers, in_amount, in_decimals, out_decimals).amount_out


def protocol_fee(
    request: SwapRequest,
    assets: Tuple[Asset, Asset],
    valuations: Tuple[Valuation, Valuation],
    outcome: TradeOutcome,
    share_price: int,
    config: PricingConfig,
    share_decimals: int = 18,
) -> int:
    """Protocol's cut of the spread, in share tokens.

    Compares the realized trade with the same trade at raw oracle prices; the
    USD the trader lost to the curve, times ``protocol_fee_rate``, is owed.
    Trades with a reserve or share leg are exempt.
    """
    if config.is_base(request.asset_in) or config.is_base(request.asset_out):
        return 0
    if config.protocol_fee_rate == 0 or share_price == 0:
        return 0
    asset_in, asset_out = assets
    val_in, val_out = valuations

    if request.kind == SwapKind.GIVEN_IN:
        ideal_value = to_usd(outcome.amount_in, val_in.price, asset_in.decimals)
        ideal_out = from_usd(ideal_value, val_out.price, asset_out.decimals)
        shortfall = ideal_out - outcome.amount_out
        lost_value = to_usd(shortfall, val_out.price, asset_out.decimals) if shortfall > 0 else 0
    else:
        ideal_value = mul_div_up(outcome.amount_out, val_out.price, scale(asset_out.decimals))
        ideal_in = from_usd_up(ideal_value, val_in.price, asset_in.decimals)
        excess = outcome.amount_in - ideal_in
        lost_value = to_usd(excess, val_in.price, asset_in.decimals) if excess > 0 else 0

    if lost_value <= 0:
        return 0
    fee_value = mul_div(lost_value, config.protocol_fee_rate, ONE)
    return mul_div(fee_value, scale(share_decimals), share_price)
