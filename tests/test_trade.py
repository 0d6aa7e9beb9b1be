import pytest

from amm.core import Tier, validate_tiers
from amm.errors import PricingError
from amm.fixed_point import ONE, to_usd
from amm.trade import convert, spend_value, value_given_in, walk_given_in, walk_given_out

IN_TIERS = (Tier(10 * ONE, 2 * ONE), Tier(9 * ONE))
OUT_TIERS = (Tier(ONE, 30 * ONE), Tier(2 * ONE))

# awkward prices on 6-decimal tokens so every division truncates
ODD_IN = (Tier(3_333_333_333_333_333_333, 7_000_000), Tier(2_999_999_999_999_999_999))
ODD_OUT = (
    Tier(1_234_567_890_123_456_789, 50_000_000),
    Tier(987_654_321_987_654_321, 25_000_000),
    Tier(1_111_111_111_111_111_111),
)


class TestWalks:
    def test_given_in_crosses_tiers(self) -> None:
        outcome = walk_given_in(IN_TIERS, OUT_TIERS, 5 * ONE)
        assert outcome.value == 47 * ONE
        assert outcome.consumed_in == (2 * ONE, 3 * ONE)
        assert outcome.consumed_out == (30 * ONE, 17 * ONE // 2)
        assert outcome.amount_out == 77 * ONE // 2

    def test_given_out_inverts_given_in(self) -> None:
        outcome = walk_given_out(IN_TIERS, OUT_TIERS, 77 * ONE // 2)
        assert outcome.value == 47 * ONE
        assert outcome.amount_in == 5 * ONE

    def test_single_tier_conversion(self) -> None:
        assert convert((Tier(2 * ONE),), (Tier(ONE),), 5 * ONE) == 10 * ONE

    def test_zero_amount(self) -> None:
        outcome = walk_given_in(IN_TIERS, OUT_TIERS, 0)
        assert outcome.amount_out == 0
        assert outcome.consumed_in == ()

    def test_bounded_tier_consumed_exactly(self) -> None:
        value, consumed = value_given_in(IN_TIERS, 2 * ONE, 18)
        assert value == 20 * ONE
        assert consumed == (2 * ONE,)

    def test_spend_rounding(self) -> None:
        down, _ = spend_value((Tier(3 * ONE),), 10 * ONE, 6)
        up, _ = spend_value((Tier(3 * ONE),), 10 * ONE, 6, round_up=True)
        assert (down, up) == (3_333_333, 3_333_334)


class TestRounding:
    @pytest.mark.parametrize("amount", [1, 999_999, 7_000_000, 12_345_678, 150_000_001])
    def test_value_conserved_within_one_unit_per_tier(self, amount) -> None:
        outcome = walk_given_in(ODD_IN, ODD_OUT, amount, 6, 6)
        realized = sum(
            to_usd(take, tier.price, 6) for take, tier in zip(outcome.consumed_out, ODD_OUT)
        )
        slack = sum(tier.price // 10 ** 6 + 1 for tier in ODD_OUT)
        assert 0 <= outcome.value - realized <= slack

    @pytest.mark.parametrize("amount", [1, 1_000_003, 49_999_999, 80_000_000, 123_456_789])
    def test_given_out_rounds_in_pools_favour(self, amount) -> None:
        needed = walk_given_out(ODD_IN, ODD_OUT, amount, 6, 6)
        replayed = walk_given_in(ODD_IN, ODD_OUT, needed.amount_in, 6, 6)
        assert replayed.amount_out >= amount


class TestTierValidation:
    def test_valid_shapes(self) -> None:
        assert validate_tiers((Tier(ONE),)) == (Tier(ONE),)
        assert len(validate_tiers((Tier(ONE, 1), Tier(ONE, 1), Tier(ONE)))) == 3

    @pytest.mark.parametrize(
        "tiers",
        [
            (),
            (Tier(ONE, 1),),
            (Tier(ONE), Tier(ONE)),
            (Tier(0),),
            (Tier(ONE, 1), Tier(ONE, 1), Tier(ONE, 1), Tier(ONE)),
        ],
    )
    def test_invalid_shapes(self, tiers) -> None:
        with pytest.raises(PricingError):
            validate_tiers(tiers)

    def test_walk_validates_tiers(self) -> None:
        with pytest.raises(PricingError):
            walk_given_in((Tier(ONE, 5),), OUT_TIERS, ONE)
