import pandas as pd

from amm.config import ScenarioConfig
from amm.core import AssetCategory
from amm.engine import SimulationEngine


def _engine(seed: int = 7, **overrides) -> SimulationEngine:
    cfg = ScenarioConfig(swaps_per_tick=10, **overrides)
    return SimulationEngine(cfg, seed=seed)


def test_factory_lists_every_category():
    engine = _engine()
    registry = engine.pool.registry
    cfg = engine.cfg
    counts = {c: 0 for c in (AssetCategory.PRODUCT, AssetCategory.COMMON, AssetCategory.USD)}
    for asset_id in engine.factory.ordinary_asset_ids():
        counts[registry.category(asset_id)] += 1
    assert counts[AssetCategory.PRODUCT] == cfg.num_product_assets
    assert counts[AssetCategory.COMMON] == cfg.num_common_assets
    assert counts[AssetCategory.USD] == cfg.num_usd_assets
    assert registry.category(engine.pool.reserve.asset_id) == AssetCategory.BASE


def test_seeded_pool_starts_near_target():
    engine = _engine()
    assets = engine.metrics.asset_df()
    assert len(assets) == len(engine.factory.ordinary_asset_ids())
    assert assets["allocation_ratio"].between(0.75, 1.25).all()
    pool_row = engine.metrics.pool_df().iloc[0]
    assert pool_row["share_price_usd"] == 1.0


def test_step_records_metrics_and_settlements():
    engine = _engine()
    engine.step(5)
    pool_df = engine.metrics.pool_df()
    assert list(pool_df["tick"]) == [0, 1, 2, 3, 4, 5]
    assert (pool_df["share_price_usd"] > 0).all()
    assert (pool_df["circulating_supply"] > 0).all()
    assert pool_df["version"].is_monotonic_increasing
    assert pool_df["swaps_executed_tick"].sum() > 0
    statuses = {r.status for r in engine.pool.receipts.receipts}
    assert "executed" in statuses
    assert engine.log.tail(10)


def test_fee_collection_stride():
    engine = _engine(fee_collection_stride_ticks=2)
    engine.step(2)
    assert engine.pool.due_protocol_fees == 0


def test_same_seed_same_run():
    a = _engine(seed=11)
    b = _engine(seed=11)
    a.step(3)
    b.step(3)
    pd.testing.assert_frame_equal(a.metrics.pool_df(), b.metrics.pool_df())
    pd.testing.assert_frame_equal(a.metrics.asset_df(), b.metrics.asset_df())


def test_locked_pool_rejects_every_swap():
    engine = _engine()
    engine.pool.lock_swaps()
    engine.step(1)
    row = engine.metrics.pool_df().iloc[-1]
    assert row["swaps_executed_tick"] == 0
    failed = [r for r in engine.pool.receipts.receipts if r.status == "failed"]
    assert failed and all(r.fail_reason == "swaps_locked" for r in failed)


def test_scenario_keeps_two_ordinary_assets():
    cfg = ScenarioConfig(num_product_assets=0, num_common_assets=-3, num_usd_assets=1)
    assert cfg.num_common_assets == 0
    assert cfg.num_product_assets + cfg.num_common_assets + cfg.num_usd_assets == 2
    engine = SimulationEngine(cfg, seed=3)
    assert len(engine.factory.ordinary_asset_ids()) == 2
    engine.step(2)
    assert len(engine.metrics.pool_df()) == 3
