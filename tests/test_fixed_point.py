import pytest

from amm.errors import Overflow
from amm.fixed_point import (
    ONE,
    UINT256_MAX,
    div_up,
    from_float,
    from_usd,
    from_usd_up,
    mul_div,
    mul_div_up,
    safe_mul,
    to_float,
    to_usd,
)


class TestSafeMul:
    def test_product_within_range(self) -> None:
        assert safe_mul(2 ** 128, 2 ** 127) == 2 ** 255
        assert safe_mul(UINT256_MAX, 1) == UINT256_MAX
        assert safe_mul(0, UINT256_MAX) == 0

    def test_high_word_overflow(self) -> None:
        with pytest.raises(Overflow):
            safe_mul(2 ** 128, 2 ** 128)
        with pytest.raises(Overflow):
            safe_mul(UINT256_MAX, 2)

    def test_operands_must_be_uint256(self) -> None:
        with pytest.raises(Overflow):
            safe_mul(-1, 5)
        with pytest.raises(Overflow):
            safe_mul(UINT256_MAX + 1, 1)

    def test_overflow_is_a_pricing_error(self) -> None:
        with pytest.raises(ValueError):
            mul_div(UINT256_MAX, UINT256_MAX, 1)


class TestDivision:
    def test_mul_div_truncates(self) -> None:
        assert mul_div(10, 1, 3) == 3

    def test_mul_div_up_rounds_up(self) -> None:
        assert mul_div_up(10, 1, 3) == 4
        assert mul_div_up(9, 1, 3) == 3
        assert div_up(0, 7) == 0

    def test_zero_divisor(self) -> None:
        with pytest.raises(ZeroDivisionError):
            mul_div(1, 1, 0)


class TestDecimalNormalisation:
    def test_usd_value_of_six_decimal_token(self) -> None:
        # 2.5 tokens of a 6-decimal asset at $4
        assert to_usd(2_500_000, 4 * ONE, 6) == 10 * ONE

    def test_from_usd_floor_and_ceil(self) -> None:
        assert from_usd(10 * ONE, 3 * ONE, 6) == 3_333_333
        assert from_usd_up(10 * ONE, 3 * ONE, 6) == 3_333_334

    def test_float_helpers(self) -> None:
        assert from_float(1.5) == 15 * ONE // 10
        assert from_float(0.1, 6) == 100_000
        assert to_float(25 * ONE // 10) == 2.5
