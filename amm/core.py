from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Tuple, Optional, Literal, List
from collections import deque

from .errors import InsufficientBalance, InvalidAsset, PricingError

if TYPE_CHECKING:
    from .config import PricingConfig

# One tier per allocation zone: underweight, neutral band, overweight.
MAX_TIERS = 3

# Balance fee is expressed in tenths of a percent; 255 disables swaps.
MAX_BALANCE_FEE = 254
BALANCE_FEE_LOCKED = 255
BALANCE_FEE_DENOMINATOR = 1000

MAX_WEIGHT = 255
MAX_CATEGORY_TOTAL = 65535

SettlementStatus = Literal["executed", "failed"]


class AssetCategory(Enum):
    UNMANAGED = 0
    PRODUCT = 1
    COMMON = 2
    USD = 3
    BASE = 4

    @property
    def is_tiered(self) -> bool:
        return self in TIERED_CATEGORIES


TIERED_CATEGORIES = (AssetCategory.PRODUCT, AssetCategory.COMMON, AssetCategory.USD)


class PriceType(Enum):
    BUY = "buy"
    SELL = "sell"
    RAW = "raw"


class SwapKind(Enum):
    GIVEN_IN = "given_in"
    GIVEN_OUT = "given_out"


def format_balances(balances: Dict[str, int]) -> str:
    if not balances:
        return "(empty)"
    items = sorted(balances.items(), key=lambda kv: kv[0])
    return ", ".join(f"{asset}:{amount}" for asset, amount in items)

# -----------------------------
# Events
# -----------------------------
@dataclass
class Event:
    tick: int
    event_type: str
    asset_in: Optional[str] = None
    asset_out: Optional[str] = None
    amount: Optional[int] = None
    meta: dict = field(default_factory=dict)

class EventLog:
    def __init__(self, maxlen: Optional[int] = None) -> None:
        self.events = deque(maxlen=maxlen)

    def add(self, e: Event) -> None:
        self.events.append(e)

    def tail(self, n: int = 200) -> List[Event]:
        if n <= 0:
            return []
        if n >= len(self.events):
            return list(self.events)
        return list(self.events)[-n:]


# -----------------------------
# Assets / pricing values
# -----------------------------
@dataclass(frozen=True)
class Asset:
    asset_id: str
    symbol: str
    decimals: int = 18

@dataclass(frozen=True)
class AssetRecord:
    category: AssetCategory = AssetCategory.UNMANAGED
    weight: int = 0

@dataclass(frozen=True)
class Valuation:
    price: int
    value: int

@dataclass(frozen=True)
class Tier:
    """One pricing zone: USD price per whole token and capacity in native units.

    A capacity of 0 means unbounded and is only valid on the final tier.
    """
    price: int
    capacity: int = 0

    @property
    def unbounded(self) -> bool:
        return self.capacity == 0


def validate_tiers(tiers: Tuple[Tier, ...]) -> Tuple[Tier, ...]:
    if not tiers or len(tiers) > MAX_TIERS:
        raise PricingError(f"expected 1..{MAX_TIERS} tiers, got {len(tiers)}")
    for idx, tier in enumerate(tiers):
        if tier.price <= 0:
            raise PricingError(f"tier {idx} has non-positive price")
        last = idx == len(tiers) - 1
        if tier.unbounded != last:
            raise PricingError("only the final tier may be unbounded, and it must be")
    return tiers


# -----------------------------
# Pool components
# -----------------------------
class Vault:
    def __init__(self) -> None:
        self.inventory: Dict[str, int] = {}

    def get(self, asset_id: str) -> int:
        return int(self.inventory.get(asset_id, 0))

    def add(self, asset_id: str, amount: int) -> None:
        if amount < 0:
            raise PricingError("cannot add a negative amount")
        self.inventory[asset_id] = self.get(asset_id) + int(amount)

    def sub(self, asset_id: str, amount: int) -> None:
        amt = int(amount)
        if self.get(asset_id) < amt:
            raise InsufficientBalance(
                f"{asset_id}: requested {amt}, available {self.get(asset_id)}"
            )
        self.inventory[asset_id] = self.get(asset_id) - amt


# -----------------------------
# Snapshots / requests / receipts
# -----------------------------
@dataclass(frozen=True)
class PoolSnapshot:
    """Consistent read of pool state, tagged with the version it was taken at."""
    version: int
    assets: Tuple[Asset, ...]
    balances: Tuple[int, ...]
    total_supply: int
    due_protocol_fees: int
    config: "PricingConfig"

    def index_of(self, asset_id: str) -> int:
        for idx, asset in enumerate(self.assets):
            if asset.asset_id == asset_id:
                return idx
        raise InvalidAsset(f"asset {asset_id} is not part of the pool")

    def balance_of(self, asset_id: str) -> int:
        return self.balances[self.index_of(asset_id)]

    @property
    def share_index(self) -> int:
        return self.index_of(self.config.share_id)

    @property
    def reserve_index(self) -> int:
        return self.index_of(self.config.reserve_id)

    @property
    def circulating_supply(self) -> int:
        return circulating_supply(
            self.total_supply, self.balances[self.share_index], self.due_protocol_fees
        )


def circulating_supply(total_supply: int, pool_held: int, due_fees: int) -> int:
    supply = total_supply - pool_held + due_fees
    if supply < 0:
        raise PricingError(
            f"negative circulating supply: total={total_supply} held={pool_held} due={due_fees}"
        )
    return supply


@dataclass(frozen=True)
class SwapRequest:
    asset_in: str
    asset_out: str
    amount: int
    kind: SwapKind = SwapKind.GIVEN_IN
    version: Optional[int] = None

@dataclass(frozen=True)
class TradeOutcome:
    amount_in: int
    amount_out: int
    value: int
    consumed_in: Tuple[int, ...]
    consumed_out: Tuple[int, ...]

@dataclass(frozen=True)
class SwapQuote:
    request: SwapRequest
    version: int
    total_value: int
    valuation_in: Valuation
    valuation_out: Valuation
    in_tiers: Tuple[Tier, ...]
    out_tiers: Tuple[Tier, ...]
    outcome: TradeOutcome
    protocol_fee: int

    @property
    def amount_in(self) -> int:
        return self.outcome.amount_in

    @property
    def amount_out(self) -> int:
        return self.outcome.amount_out

@dataclass
class SwapReceipt:
    tick: int
    pool_id: str
    asset_in: str
    amount_in: int
    asset_out: str
    amount_out: int
    protocol_fee: int
    version: int
    status: SettlementStatus
    fail_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "tick": self.tick,
            "pool_id": self.pool_id,
            "asset_in": self.asset_in,
            "amount_in": int(self.amount_in),
            "asset_out": self.asset_out,
            "amount_out": int(self.amount_out),
            "protocol_fee": int(self.protocol_fee),
            "version": int(self.version),
            "status": self.status,
            "fail_reason": self.fail_reason,
        }

class ReceiptStore:
    def __init__(self) -> None:
        self.receipts: List[SwapReceipt] = []

    def add(self, r: SwapReceipt) -> None:
        self.receipts.append(r)

    def tail(self, n: int = 200) -> List[SwapReceipt]:
        return self.receipts[-n:]

@dataclass(frozen=True)
class JoinResult:
    shares_out: int
    amounts_in: Tuple[int, ...]

@dataclass(frozen=True)
class ExitResult:
    shares_in: int
    amounts_out: Tuple[int, ...]
