import pytest

from amm.core import Asset, AssetCategory, MAX_WEIGHT
from amm.errors import NoPriceSource, RegistryError
from amm.feed import PriceFeedGateway, StaticPriceSource
from amm.fixed_point import ONE
from amm.registry import AssetRegistry


@pytest.fixture
def registry() -> AssetRegistry:
    source = StaticPriceSource()
    feed = PriceFeedGateway()
    for symbol in ("AAA", "BBB", "CCC"):
        source.set_price(symbol, ONE)
        feed.register_source(symbol, source)
    return AssetRegistry(feed)


class TestListing:
    def test_list_updates_category_total(self, registry) -> None:
        registry.list_asset(Asset("AAA", "AAA"), AssetCategory.PRODUCT, 40)
        registry.list_asset(Asset("BBB", "BBB"), AssetCategory.PRODUCT, 60)
        registry.list_asset(Asset("CCC", "CCC"), AssetCategory.USD, 10)
        assert registry.category_weight_totals() == (100, 0, 10)
        assert registry.category("BBB") == AssetCategory.PRODUCT
        assert registry.in_category_weight("CCC") == 10

    def test_list_then_delist_restores_totals(self, registry) -> None:
        registry.list_asset(Asset("AAA", "AAA"), AssetCategory.COMMON, 50)
        before = registry.category_weight_totals()
        registry.list_asset(Asset("BBB", "BBB"), AssetCategory.COMMON, 70)
        registry.delist_asset("BBB", pool_balance=0)
        assert registry.category_weight_totals() == before
        assert registry.category("BBB") == AssetCategory.UNMANAGED

    def test_requires_price_source(self, registry) -> None:
        with pytest.raises(NoPriceSource):
            registry.list_asset(Asset("ZZZ", "ZZZ"), AssetCategory.PRODUCT, 10)

    def test_base_assets_need_no_source_and_carry_no_weight(self, registry) -> None:
        record = registry.list_asset(Asset("SHARE", "SHARE"), AssetCategory.BASE, 99)
        assert record.weight == 0
        assert registry.category_weight_totals() == (0, 0, 0)
        with pytest.raises(RegistryError):
            registry.set_weight("SHARE", 10)

    def test_rejects_unmanaged_and_duplicates(self, registry) -> None:
        with pytest.raises(RegistryError):
            registry.list_asset(Asset("AAA", "AAA"), AssetCategory.UNMANAGED, 10)
        registry.list_asset(Asset("AAA", "AAA"), AssetCategory.PRODUCT, 10)
        with pytest.raises(RegistryError):
            registry.list_asset(Asset("AAA", "AAA"), AssetCategory.COMMON, 10)

    def test_delist_with_balance_rejected(self, registry) -> None:
        registry.list_asset(Asset("AAA", "AAA"), AssetCategory.PRODUCT, 10)
        with pytest.raises(RegistryError):
            registry.delist_asset("AAA", pool_balance=1)
        assert registry.category_weight_totals() == (10, 0, 0)

    def test_delist_unknown(self, registry) -> None:
        with pytest.raises(RegistryError):
            registry.delist_asset("AAA", pool_balance=0)


class TestWeights:
    def test_weights_clamped(self, registry) -> None:
        record = registry.list_asset(Asset("AAA", "AAA"), AssetCategory.PRODUCT, 1000)
        assert record.weight == MAX_WEIGHT
        registry.set_category_weights(300, -5, 20)
        assert registry.category_weights == [MAX_WEIGHT, 0, 20]

    def test_set_weight_tracks_total(self, registry) -> None:
        registry.list_asset(Asset("AAA", "AAA"), AssetCategory.PRODUCT, 10)
        registry.list_asset(Asset("BBB", "BBB"), AssetCategory.PRODUCT, 20)
        registry.set_weight("AAA", 50)
        assert registry.category_weight_totals() == (70, 0, 0)

    def test_pricing_config_snapshot(self, registry) -> None:
        registry.set_category_weights(1, 2, 3)
        registry.list_asset(Asset("AAA", "AAA"), AssetCategory.COMMON, 10)
        config = registry.pricing_config(reserve_id="RSV", share_id="SHARE", balance_fee=7)
        registry.set_weight("AAA", 99)
        assert config.record("AAA").weight == 10
        assert config.category_total(AssetCategory.COMMON) == 10
        assert config.weight_sum == 6
        assert config.balance_fee == 7
        assert config.is_base("RSV") and not config.is_base("AAA")
