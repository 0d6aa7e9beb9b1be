from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import logging
import numpy as np
import random

from .config import ScenarioConfig
from .core import AssetCategory, Event, EventLog, PriceType, SwapKind, SwapReceipt, SwapRequest
from .errors import PricingError
from .factory import PoolFactory
from .fixed_point import ONE, from_float, from_usd, mul_div, to_float, to_usd
from .metrics import MetricsStore
from .pool import Pool
from .pricing import aggregate, allocation_zone, reserve_price, share_price, target_value

logger = logging.getLogger(__name__)


class SimulationEngine:
    """Drives random swaps, joins and exits against one pool, tick by tick.

    Stands in for the venue layer: it prices every settlement against the
    pool's current version and records rejected settlements instead of
    retrying them.
    """

    def __init__(self, cfg: ScenarioConfig, seed: int = 1) -> None:
        self.cfg = cfg
        self.rng = random.Random(seed)
        random.seed(seed)
        np.random.seed(seed)

        self.tick: int = 0
        self.log = EventLog(maxlen=cfg.event_log_maxlen)
        self.metrics = MetricsStore()

        self.factory = PoolFactory(cfg)
        self.pool: Pool = self.factory.create_pool()

        self._swaps_executed_tick: int = 0
        self._swaps_failed_tick: int = 0
        self._swap_volume_usd_tick: int = 0
        self._fail_reasons_tick: Dict[str, int] = {}
        self._fees_minted_total: int = 0
        self._joins_tick: int = 0
        self._exits_tick: int = 0

        self.snapshot_metrics()

    # -----------------------------
    # Market moves
    # -----------------------------
    def _apply_price_walk(self) -> None:
        cfg = self.cfg
        source = self.factory.source
        for symbol, price in list(source.prices.items()):
            if self.factory.categories.get(symbol) == AssetCategory.USD:
                sigma = cfg.usd_asset_volatility_per_tick
            else:
                sigma = cfg.price_volatility_per_tick
            if sigma <= 0.0:
                continue
            shock = float(np.random.lognormal(mean=0.0, sigma=sigma))
            new_price = max(1, int(price * shock))
            source.set_price(symbol, new_price, source.denominators.get(symbol))

    # -----------------------------
    # Settlements
    # -----------------------------
    def _choose_legs(self) -> Tuple[str, str]:
        cfg = self.cfg
        ordinary = self.factory.ordinary_asset_ids()
        reserve_id = self.pool.reserve.asset_id
        share_id = self.pool.share.asset_id
        a, b = self.rng.sample(ordinary, k=2)
        r = self.rng.random()
        if r < cfg.p_reserve_leg:
            a = reserve_id
        elif r < cfg.p_reserve_leg + cfg.p_share_leg:
            a = share_id
        if self.rng.random() < 0.5:
            return a, b
        return b, a

    def _sample_amount(self, asset_id: str, total_value: int) -> int:
        mean_usd = max(1.0, to_float(total_value) * self.cfg.swap_size_mean_frac)
        value = from_float(float(np.random.exponential(mean_usd)))
        price = self.pool.valuation(asset_id).price
        if price <= 0:
            return 0
        asset = self.factory.asset_universe[asset_id]
        return from_usd(value, price, asset.decimals)

    def _record_failure(self, request: SwapRequest, err: PricingError) -> None:
        reason = err.code
        self._swaps_failed_tick += 1
        self._fail_reasons_tick[reason] = self._fail_reasons_tick.get(reason, 0) + 1
        self.pool.receipts.add(SwapReceipt(
            tick=self.tick, pool_id=self.pool.pool_id,
            asset_in=request.asset_in, amount_in=0,
            asset_out=request.asset_out, amount_out=0,
            protocol_fee=0, version=self.pool.version,
            status="failed", fail_reason=reason,
        ))
        self.log.add(Event(
            self.tick, "SWAP_FAILED",
            asset_in=request.asset_in, asset_out=request.asset_out,
            amount=request.amount, meta={"reason": reason, "detail": str(err)},
        ))
        logger.debug("swap %s->%s rejected: %s", request.asset_in, request.asset_out, err)

    def _random_swap(self) -> Optional[SwapReceipt]:
        asset_in, asset_out = self._choose_legs()
        kind = SwapKind.GIVEN_OUT if self.rng.random() < self.cfg.p_given_out else SwapKind.GIVEN_IN
        sized_asset = asset_out if kind == SwapKind.GIVEN_OUT else asset_in
        total = self.pool.total_value()
        amount = self._sample_amount(sized_asset, total)
        if amount <= 0:
            return None
        request = SwapRequest(asset_in, asset_out, amount, kind=kind, version=self.pool.version)
        try:
            receipt = self.pool.swap(request, tick=self.tick)
        except PricingError as err:
            self._record_failure(request, err)
            return None

        self._swaps_executed_tick += 1
        self._swap_volume_usd_tick += self.pool.value_of(asset_in, receipt.amount_in)
        self.log.add(Event(
            self.tick, "SWAP_EXECUTED",
            asset_in=asset_in, asset_out=asset_out, amount=receipt.amount_in,
            meta={"amount_out": receipt.amount_out, "protocol_fee": receipt.protocol_fee},
        ))
        return receipt

    def _random_join(self) -> None:
        pool = self.pool
        frac = float(np.random.uniform(0.0, self.cfg.join_exit_size_frac))
        snap = pool.snapshot()
        amounts = [
            0 if asset.asset_id == pool.share.asset_id else int(balance * frac)
            for asset, balance in zip(snap.assets, snap.balances)
        ]
        try:
            result = pool.join(amounts, snap.version)
        except PricingError as err:
            self.log.add(Event(self.tick, "JOIN_FAILED", meta={"reason": err.code}))
            logger.debug("join rejected: %s", err)
            return
        self._joins_tick += 1
        self.log.add(Event(self.tick, "JOIN", amount=result.shares_out))

    def _random_exit(self) -> None:
        pool = self.pool
        snap = pool.snapshot()
        public = snap.total_supply - snap.balances[snap.share_index]
        shares = int(public * float(np.random.uniform(0.0, self.cfg.join_exit_size_frac)))
        if shares <= 0:
            return
        try:
            result = pool.exit(shares, snap.version)
        except PricingError as err:
            self.log.add(Event(self.tick, "EXIT_FAILED", meta={"reason": err.code}))
            logger.debug("exit rejected: %s", err)
            return
        self._exits_tick += 1
        self.log.add(Event(self.tick, "EXIT", amount=result.shares_in))

    def step(self, n_ticks: int = 1) -> None:
        for _ in range(n_ticks):
            self.tick += 1
            self._swaps_executed_tick = 0
            self._swaps_failed_tick = 0
            self._swap_volume_usd_tick = 0
            self._fail_reasons_tick = {}
            self._joins_tick = 0
            self._exits_tick = 0

            self._apply_price_walk()

            if self.rng.random() < self.cfg.p_join_per_tick:
                self._random_join()
            for _ in range(max(0, int(self.cfg.swaps_per_tick))):
                self._random_swap()
            if self.rng.random() < self.cfg.p_exit_per_tick:
                self._random_exit()

            stride = max(1, int(self.cfg.fee_collection_stride_ticks or 1))
            if self.tick % stride == 0:
                minted = self.pool.collect_protocol_fees()
                if minted:
                    self._fees_minted_total += minted
                    self.log.add(Event(self.tick, "FEES_COLLECTED", amount=minted))

            if self._swaps_failed_tick:
                logger.info(
                    "tick %d: %d swaps executed, %d rejected %s",
                    self.tick, self._swaps_executed_tick, self._swaps_failed_tick, self._fail_reasons_tick,
                )
            self.snapshot_metrics()

    # -----------------------------
    # Metrics
    # -----------------------------
    def snapshot_metrics(self, force: bool = False) -> None:
        stride = int(self.cfg.metrics_stride or 0)
        if not force and (stride <= 0 or self.tick % stride != 0):
            return
        pool = self.pool
        snap = pool.snapshot()
        cfg = snap.config
        agg = aggregate(
            snap.assets, snap.balances, -1, -1, snap.total_supply,
            snap.due_protocol_fees, pool.feed, cfg,
        )
        total = agg.total_value
        supply = snap.circulating_supply
        reserve_balance = snap.balances[snap.reserve_index]
        rsv_price = reserve_price(total, reserve_balance, pool.reserve.decimals) if reserve_balance else 0

        self.metrics.add_pool({
            "tick": self.tick,
            "version": snap.version,
            "total_ordinary_value_usd": to_float(total),
            "share_price_usd": to_float(share_price(total, supply, pool.share.decimals)),
            "reserve_price_usd": to_float(rsv_price),
            "reserve_balance": to_float(reserve_balance, pool.reserve.decimals),
            "circulating_supply": to_float(supply, pool.share.decimals),
            "total_supply": to_float(snap.total_supply, pool.share.decimals),
            "due_protocol_fees": to_float(snap.due_protocol_fees, pool.share.decimals),
            "fees_minted_total": to_float(self._fees_minted_total, pool.share.decimals),
            "swaps_executed_tick": self._swaps_executed_tick,
            "swaps_failed_tick": self._swaps_failed_tick,
            "swap_volume_usd_tick": to_float(self._swap_volume_usd_tick),
            "joins_tick": self._joins_tick,
            "exits_tick": self._exits_tick,
        })

        rows: List[Dict[str, object]] = []
        for asset, balance in zip(snap.assets, snap.balances):
            if cfg.is_base(asset.asset_id):
                continue
            record = cfg.record(asset.asset_id)
            price = pool.feed.quote(asset, PriceType.RAW)
            value = to_usd(balance, price, asset.decimals)
            target = target_value(total, record, cfg)
            rows.append({
                "tick": self.tick,
                "asset_id": asset.asset_id,
                "category": record.category.name,
                "weight": record.weight,
                "price_usd": to_float(price),
                "balance": to_float(balance, asset.decimals),
                "value_usd": to_float(value),
                "target_usd": to_float(target),
                "allocation_ratio": to_float(mul_div(value, ONE, target)) if target else 0.0,
                "zone": allocation_zone(value, target),
            })
        self.metrics.add_asset_rows(rows)
