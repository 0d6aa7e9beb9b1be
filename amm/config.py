from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple

from .core import (
    AssetCategory,
    AssetRecord,
    BALANCE_FEE_LOCKED,
    MAX_BALANCE_FEE,
)

CATEGORY_SLOTS = {
    AssetCategory.PRODUCT: 0,
    AssetCategory.COMMON: 1,
    AssetCategory.USD: 2,
}

MIN_ORDINARY_ASSETS = 2


@dataclass(frozen=True)
class PricingConfig:
    """Everything a pricing call needs besides balances and quotes.

    Built from the registry and pool state at snapshot time so pricing
    functions stay pure given their arguments.
    """
    category_weights: Tuple[int, int, int]
    category_totals: Tuple[int, int, int]
    records: Mapping[str, AssetRecord]
    reserve_id: str
    share_id: str
    balance_fee: int = 0
    protocol_fee_rate: int = 0  # 18-decimal fraction of the spread captured

    def __post_init__(self) -> None:
        object.__setattr__(self, "records", MappingProxyType(dict(self.records)))

    @property
    def weight_sum(self) -> int:
        return sum(self.category_weights)

    @property
    def swaps_locked(self) -> bool:
        return self.balance_fee == BALANCE_FEE_LOCKED

    def category_weight(self, category: AssetCategory) -> int:
        slot = CATEGORY_SLOTS.get(category)
        return 0 if slot is None else self.category_weights[slot]

    def category_total(self, category: AssetCategory) -> int:
        slot = CATEGORY_SLOTS.get(category)
        return 0 if slot is None else self.category_totals[slot]

    def record(self, asset_id: str) -> AssetRecord:
        return self.records.get(asset_id, AssetRecord())

    def is_base(self, asset_id: str) -> bool:
        return asset_id in (self.reserve_id, self.share_id)


@dataclass
class ScenarioConfig:
    # Basket composition
    num_product_assets: int = 3
    num_common_assets: int = 3
    num_usd_assets: int = 2
    product_category_weight: int = 40
    common_category_weight: int = 35
    usd_category_weight: int = 25
    asset_weight_min: int = 20
    asset_weight_max: int = 200
    decimals_choices: list[int] = field(default_factory=lambda: [6, 8, 18])
    usd_symbol: str = "USD"
    reserve_symbol: str = "RSV"
    share_symbol: str = "SHARE"

    # Price feed
    intermediate_symbol: str = "ETH"
    intermediate_price_usd: float = 2500.0
    p_quoted_in_intermediate: float = 0.3  # share of non-USD assets quoted in ETH
    initial_price_sigma: float = 1.0       # lognormal spread of starting prices
    price_volatility_per_tick: float = 0.02
    usd_asset_volatility_per_tick: float = 0.001
    price_spread_bps: int = 10

    # Pool seeding
    initial_pool_value_usd: float = 1_000_000.0
    initial_allocation_noise: float = 0.10  # relative deviation from target at seed
    reserve_initial_price_usd: float = 1.0
    premint_shares: float = 1_000_000.0    # pool-held share balance, whole tokens

    # Fees
    balance_fee: int = 5                   # tenths of a percent (5 = 0.5%)
    protocol_fee_rate: float = 0.5         # share of captured spread owed to protocol
    fee_collection_stride_ticks: int = 4

    # Activity
    swaps_per_tick: int = 20
    swap_size_mean_frac: float = 0.01      # of total ordinary value, per swap
    p_given_out: float = 0.3
    p_reserve_leg: float = 0.1
    p_share_leg: float = 0.05
    p_join_per_tick: float = 0.2
    p_exit_per_tick: float = 0.2
    join_exit_size_frac: float = 0.02      # of circulating supply

    # Metrics / debug
    metrics_stride: int = 1
    event_log_maxlen: int | None = 5000
    debug_balances: bool = False

    def __post_init__(self) -> None:
        self.balance_fee = min(max(0, int(self.balance_fee)), MAX_BALANCE_FEE)
        self.protocol_fee_rate = min(max(0.0, float(self.protocol_fee_rate)), 1.0)
        self.num_product_assets = max(0, int(self.num_product_assets))
        self.num_common_assets = max(0, int(self.num_common_assets))
        self.num_usd_assets = max(0, int(self.num_usd_assets))
        # swaps need two distinct ordinary legs
        shortfall = MIN_ORDINARY_ASSETS - (self.num_product_assets + self.num_common_assets + self.num_usd_assets)
        if shortfall > 0:
            self.num_product_assets += shortfall
        if not self.decimals_choices:
            self.decimals_choices = [18]
        if self.asset_weight_min > self.asset_weight_max:
            self.asset_weight_min, self.asset_weight_max = self.asset_weight_max, self.asset_weight_min
