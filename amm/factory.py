from __future__ import annotations
from typing import Dict, List, Tuple
import numpy as np
import random

from .config import ScenarioConfig
from .core import Asset, AssetCategory, PriceType
from .feed import PriceFeedGateway, StaticPriceSource
from .fixed_point import from_float, from_usd
from .pool import Pool
from .pricing import target_value
from .registry import AssetRegistry

CATEGORY_PREFIXES = {
    AssetCategory.PRODUCT: "PRD",
    AssetCategory.COMMON: "CMN",
    AssetCategory.USD: "USD",
}


class PoolFactory:
    """Builds a listed, seeded pool from a scenario config.

    Uses the global ``random``/``numpy`` generators, which the simulation
    engine seeds before construction.
    """

    def __init__(self, cfg: ScenarioConfig) -> None:
        self.cfg = cfg
        self.source = StaticPriceSource(spread_bps=cfg.price_spread_bps)
        self.feed = PriceFeedGateway()
        self.registry = AssetRegistry(self.feed)
        self.asset_universe: Dict[str, Asset] = {}
        self.categories: Dict[str, AssetCategory] = {}

    def _sample_price_usd(self, category: AssetCategory) -> float:
        if category == AssetCategory.USD:
            return float(1.0 + np.random.normal(0.0, 0.002))
        return float(max(0.01, 10.0 * np.random.lognormal(mean=0.0, sigma=self.cfg.initial_price_sigma)))

    def _register_price(self, symbol: str, price_usd: float, quoted_in_intermediate: bool) -> None:
        cfg = self.cfg
        if quoted_in_intermediate:
            self.source.set_price(symbol, from_float(price_usd / cfg.intermediate_price_usd), cfg.intermediate_symbol)
        else:
            self.source.set_price(symbol, from_float(price_usd))
        self.feed.register_source(symbol, self.source)

    def _category_plan(self) -> List[Tuple[AssetCategory, int]]:
        cfg = self.cfg
        return [
            (AssetCategory.PRODUCT, cfg.num_product_assets),
            (AssetCategory.COMMON, cfg.num_common_assets),
            (AssetCategory.USD, cfg.num_usd_assets),
        ]

    def create_pool(self, pool_id: str = "pool_0001") -> Pool:
        cfg = self.cfg
        self._register_price(cfg.intermediate_symbol, cfg.intermediate_price_usd, False)

        reserve = Asset(cfg.reserve_symbol, cfg.reserve_symbol, 18)
        share = Asset(cfg.share_symbol, cfg.share_symbol, 18)
        pool = Pool(
            pool_id=pool_id,
            registry=self.registry,
            feed=self.feed,
            reserve=reserve,
            share=share,
            balance_fee=cfg.balance_fee,
            protocol_fee_rate=from_float(cfg.protocol_fee_rate),
        )
        pool.debug_balances = cfg.debug_balances
        pool.set_category_weights(
            cfg.product_category_weight, cfg.common_category_weight, cfg.usd_category_weight
        )
        self.asset_universe[reserve.asset_id] = reserve
        self.asset_universe[share.asset_id] = share

        for category, count in self._category_plan():
            prefix = CATEGORY_PREFIXES[category]
            for n in range(max(0, count)):
                symbol = f"{prefix}{n + 1}"
                decimals = 6 if category == AssetCategory.USD else random.choice(cfg.decimals_choices)
                asset = Asset(asset_id=symbol, symbol=symbol, decimals=decimals)
                via_intermediate = (
                    category != AssetCategory.USD and random.random() < cfg.p_quoted_in_intermediate
                )
                self._register_price(symbol, self._sample_price_usd(category), via_intermediate)
                weight = int(np.random.randint(cfg.asset_weight_min, cfg.asset_weight_max + 1))
                pool.list_asset(asset, category, weight)
                self.asset_universe[symbol] = asset
                self.categories[symbol] = category

        self._seed_balances(pool)
        return pool

    def _seed_balances(self, pool: Pool) -> None:
        """Bootstrap-join a basket near target allocation, then premint pool-held shares."""
        cfg = self.cfg
        total = from_float(cfg.initial_pool_value_usd)
        config = pool.pricing_config()
        amounts = []
        for asset in pool.assets:
            if asset.asset_id == pool.share.asset_id:
                amounts.append(0)
                continue
            if asset.asset_id == pool.reserve.asset_id:
                amounts.append(from_usd(total, from_float(cfg.reserve_initial_price_usd), asset.decimals))
                continue
            target = target_value(total, config.record(asset.asset_id), config)
            noise = float(np.random.uniform(-cfg.initial_allocation_noise, cfg.initial_allocation_noise))
            seeded = max(0, target + int(target * noise))
            price = self.feed.quote(asset, PriceType.RAW)
            amounts.append(from_usd(seeded, price, asset.decimals))
        pool.join(amounts, pool.version)
        if cfg.premint_shares > 0:
            pool.premint_shares(from_float(cfg.premint_shares, pool.share.decimals))

    def ordinary_asset_ids(self) -> List[str]:
        return list(self.categories)
