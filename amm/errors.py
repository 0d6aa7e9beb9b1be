"""Exceptions raised by the pricing core.

Every error carries a short ``code`` that the simulator stores as the
``fail_reason`` of a rejected settlement.
"""


class PricingError(ValueError):
    code = "pricing_error"


class Overflow(PricingError):
    code = "overflow"


class NoPriceSource(PricingError):
    code = "no_price_source"


class CyclicPriceReference(PricingError):
    code = "cyclic_price_reference"


class LengthMismatch(PricingError):
    code = "length_mismatch"


class InsufficientBalance(PricingError):
    code = "insufficient_balance"


class ReplayWindowViolation(PricingError):
    code = "stale_snapshot"


class SwapsLocked(PricingError):
    code = "swaps_locked"


class InvalidAsset(PricingError):
    code = "invalid_asset"


class RegistryError(PricingError):
    code = "registry_error"
