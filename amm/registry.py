from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import logging

from .config import CATEGORY_SLOTS, PricingConfig
from .core import (
    Asset,
    AssetCategory,
    AssetRecord,
    MAX_CATEGORY_TOTAL,
    MAX_WEIGHT,
)
from .errors import NoPriceSource, RegistryError
from .feed import PriceFeedGateway

logger = logging.getLogger(__name__)


def clamp_weight(weight: int) -> int:
    return min(max(0, int(weight)), MAX_WEIGHT)


class AssetRegistry:
    """Category membership and weights for listed assets.

    Category totals always equal the sum of in-category weights of the assets
    listed in that category.
    """

    def __init__(self, feed: PriceFeedGateway) -> None:
        self.feed = feed
        self.assets: Dict[str, Asset] = {}
        self.records: Dict[str, AssetRecord] = {}
        self.category_weights: List[int] = [0, 0, 0]
        self.category_totals: List[int] = [0, 0, 0]

    def category(self, asset_id: str) -> AssetCategory:
        return self.records.get(asset_id, AssetRecord()).category

    def in_category_weight(self, asset_id: str) -> int:
        return self.records.get(asset_id, AssetRecord()).weight

    def category_weight_totals(self) -> Tuple[int, int, int]:
        return tuple(self.category_totals)

    def set_category_weights(self, product: int, common: int, usd: int) -> None:
        self.category_weights = [clamp_weight(product), clamp_weight(common), clamp_weight(usd)]

    def _adjust_total(self, category: AssetCategory, delta: int) -> None:
        slot = CATEGORY_SLOTS.get(category)
        if slot is None:
            return
        total = self.category_totals[slot] + delta
        if total < 0 or total > MAX_CATEGORY_TOTAL:
            raise RegistryError(f"{category.name} weight total out of range: {total}")
        self.category_totals[slot] = total

    def list_asset(self, asset: Asset, category: AssetCategory, weight: int = 0) -> AssetRecord:
        if asset.asset_id in self.records:
            raise RegistryError(f"{asset.asset_id} is already listed")
        if category == AssetCategory.UNMANAGED:
            raise RegistryError("cannot list an asset as UNMANAGED")
        if category == AssetCategory.BASE:
            # reserve and share token are priced from pool state, never from the feed
            weight = 0
        elif not self.feed.has_source(asset.symbol):
            raise NoPriceSource(f"cannot list {asset.symbol} without a price source")
        record = AssetRecord(category=category, weight=clamp_weight(weight))
        self._adjust_total(category, record.weight)
        self.assets[asset.asset_id] = asset
        self.records[asset.asset_id] = record
        logger.debug("[REG] listed %s as %s weight=%d", asset.asset_id, category.name, record.weight)
        return record

    def delist_asset(self, asset_id: str, pool_balance: int) -> None:
        record = self.records.get(asset_id)
        if record is None:
            raise RegistryError(f"{asset_id} is not listed")
        if pool_balance != 0:
            raise RegistryError(f"{asset_id} still has a pool balance of {pool_balance}")
        self._adjust_total(record.category, -record.weight)
        del self.records[asset_id]
        del self.assets[asset_id]
        logger.debug("[REG] delisted %s", asset_id)

    def set_weight(self, asset_id: str, weight: int) -> AssetRecord:
        record = self.records.get(asset_id)
        if record is None:
            raise RegistryError(f"{asset_id} is not listed")
        if record.category == AssetCategory.BASE:
            raise RegistryError("base assets carry no weight")
        new_weight = clamp_weight(weight)
        self._adjust_total(record.category, new_weight - record.weight)
        updated = AssetRecord(category=record.category, weight=new_weight)
        self.records[asset_id] = updated
        return updated

    def pricing_config(
        self,
        reserve_id: str,
        share_id: str,
        balance_fee: int = 0,
        protocol_fee_rate: int = 0,
        asset_ids: Optional[List[str]] = None,
    ) -> PricingConfig:
        ids = asset_ids if asset_ids is not None else list(self.records)
        return PricingConfig(
            category_weights=tuple(self.category_weights),
            category_totals=tuple(self.category_totals),
            records={aid: self.records[aid] for aid in ids if aid in self.records},
            reserve_id=reserve_id,
            share_id=share_id,
            balance_fee=balance_fee,
            protocol_fee_rate=protocol_fee_rate,
        )
