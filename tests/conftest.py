"""Shared fixtures: a three-asset basket with a reserve and a share token.

Default basket (spread 0): PRD1 @ $10 (18 dec), CMN1 @ $2 (6 dec),
USDC @ $1 (6 dec), equal category and asset weights, so each asset's target
is a third of the ordinary value. RSV starts at $1.
"""
from typing import Dict, Optional

import pytest

from amm.core import Asset, AssetCategory
from amm.feed import PriceFeedGateway, StaticPriceSource
from amm.fixed_point import ONE, from_usd
from amm.pool import Pool
from amm.registry import AssetRegistry

PRD = Asset("PRD1", "PRD1", 18)
CMN = Asset("CMN1", "CMN1", 6)
USDC = Asset("USDC", "USDC", 6)
RSV = Asset("RSV", "RSV", 18)
SHARE = Asset("SHARE", "SHARE", 18)

PRICES = {"PRD1": 10 * ONE, "CMN1": 2 * ONE, "USDC": ONE}
CATEGORIES = {
    "PRD1": AssetCategory.PRODUCT,
    "CMN1": AssetCategory.COMMON,
    "USDC": AssetCategory.USD,
}


def usd(x) -> int:
    return int(x * ONE)


def build_pool(
    values_usd: Optional[Dict[str, int]] = None,
    reserve_usd: int = 3000,
    balance_fee: int = 0,
    spread_bps: int = 0,
    protocol_fee_rate: int = 0,
    premint: int = 0,
) -> Pool:
    values_usd = values_usd or {"PRD1": 1000, "CMN1": 1000, "USDC": 1000}
    source = StaticPriceSource(spread_bps=spread_bps)
    feed = PriceFeedGateway()
    for symbol, price in PRICES.items():
        source.set_price(symbol, price)
        feed.register_source(symbol, source)
    pool = Pool(
        "test_pool", AssetRegistry(feed), feed, reserve=RSV, share=SHARE,
        balance_fee=balance_fee, protocol_fee_rate=protocol_fee_rate,
    )
    pool.set_category_weights(1, 1, 1)
    for asset in (PRD, CMN, USDC):
        pool.list_asset(asset, CATEGORIES[asset.asset_id], 100)

    amounts = []
    for asset in pool.assets:
        if asset.asset_id == SHARE.asset_id:
            amounts.append(0)
        elif asset.asset_id == RSV.asset_id:
            amounts.append(reserve_usd * ONE)
        else:
            amounts.append(from_usd(usd(values_usd[asset.asset_id]), PRICES[asset.asset_id], asset.decimals))
    pool.join(amounts, pool.version)
    if premint:
        pool.premint_shares(premint * ONE)
    return pool


@pytest.fixture
def pool() -> Pool:
    return build_pool()


@pytest.fixture
def feed_and_source():
    source = StaticPriceSource(spread_bps=100)
    feed = PriceFeedGateway()
    return feed, source
