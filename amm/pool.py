from __future__ import annotations
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from .config import PricingConfig
from .core import (
    Asset,
    AssetCategory,
    BALANCE_FEE_LOCKED,
    ExitResult,
    JoinResult,
    MAX_BALANCE_FEE,
    PoolSnapshot,
    ReceiptStore,
    SwapKind,
    SwapQuote,
    SwapReceipt,
    SwapRequest,
    Tier,
    Valuation,
    Vault,
    format_balances,
)
from .errors import (
    InsufficientBalance,
    InvalidAsset,
    LengthMismatch,
    PricingError,
    ReplayWindowViolation,
    SwapsLocked,
)
from .feed import PriceFeedGateway
from .fixed_point import ONE, mul_div, mul_div_up, to_usd, from_usd
from .pricing import (
    aggregate,
    reserve_deposit_price,
    reserve_price_for_value_in,
    reserve_price_for_value_out,
    reserve_withdraw_price,
    share_price,
    tier_price,
)
from .registry import AssetRegistry
from .trade import protocol_fee, value_given_in, value_given_out, walk_given_in, walk_given_out

logger = logging.getLogger(__name__)


class Pool:
    """Basket pool: balances, share supply and the settlement entry points.

    Every settlement prices against a snapshot and must present that
    snapshot's version; any mutation bumps the version, so a settlement built
    on stale state is rejected instead of being applied.
    """

    def __init__(
        self,
        pool_id: str,
        registry: AssetRegistry,
        feed: PriceFeedGateway,
        reserve: Asset,
        share: Asset,
        balance_fee: int = 0,
        protocol_fee_rate: int = 0,
    ) -> None:
        self.pool_id = pool_id
        self.registry = registry
        self.feed = feed
        self.reserve = reserve
        self.share = share
        self.debug_balances: bool = False

        self.assets: List[Asset] = []
        self.vault = Vault()
        self.receipts = ReceiptStore()
        self.total_supply: int = 0
        self.due_protocol_fees: int = 0
        self.balance_fee: int = 0
        self.protocol_fee_rate: int = int(protocol_fee_rate)
        self.version: int = 1

        self.set_balance_fee(balance_fee)
        self.list_asset(share, AssetCategory.BASE)
        self.list_asset(reserve, AssetCategory.BASE)

    def _bump(self) -> None:
        self.version += 1

    def _debug_balance_change(self, action: str, before: Dict[str, int]) -> None:
        if not self.debug_balances or not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug(
            "[BAL] pool=%s action=%s version=%d before={ %s } after={ %s }",
            self.pool_id,
            action,
            self.version,
            format_balances(before),
            format_balances(self.vault.inventory),
        )

    # -----------------------------
    # Listing / configuration
    # -----------------------------
    def list_asset(self, asset: Asset, category: AssetCategory, weight: int = 0) -> None:
        if category == AssetCategory.BASE and asset not in (self.reserve, self.share):
            raise InvalidAsset(f"only the reserve and share token may be listed as BASE, not {asset.asset_id}")
        self.registry.list_asset(asset, category, weight)
        self.assets.append(asset)
        self._bump()

    def delist_asset(self, asset_id: str) -> None:
        if asset_id in (self.reserve.asset_id, self.share.asset_id):
            raise InvalidAsset("reserve and share token cannot be delisted")
        self.registry.delist_asset(asset_id, self.vault.get(asset_id))
        self.assets = [a for a in self.assets if a.asset_id != asset_id]
        self.vault.inventory.pop(asset_id, None)
        self._bump()

    def set_category_weights(self, product: int, common: int, usd: int) -> None:
        self.registry.set_category_weights(product, common, usd)
        self._bump()

    def set_weight(self, asset_id: str, weight: int) -> None:
        self._asset(asset_id)
        self.registry.set_weight(asset_id, weight)
        self._bump()

    def set_balance_fee(self, fee: int) -> None:
        self.balance_fee = min(max(0, int(fee)), MAX_BALANCE_FEE)
        self._bump()

    def lock_swaps(self) -> None:
        self.balance_fee = BALANCE_FEE_LOCKED
        self._bump()

    def deposit(self, asset_id: str, amount: int) -> None:
        """Add balance outside of settlement (seeding, donations)."""
        self._asset(asset_id)
        self.vault.add(asset_id, amount)
        self._bump()

    def premint_shares(self, amount: int) -> None:
        """Mint share tokens held by the pool itself; circulating supply is unchanged."""
        self.total_supply += int(amount)
        self.vault.add(self.share.asset_id, amount)
        self._bump()

    def _asset(self, asset_id: str) -> Asset:
        for asset in self.assets:
            if asset.asset_id == asset_id:
                return asset
        raise InvalidAsset(f"asset {asset_id} is not part of pool {self.pool_id}")

    # -----------------------------
    # Snapshots
    # -----------------------------
    def pricing_config(self) -> PricingConfig:
        return self.registry.pricing_config(
            reserve_id=self.reserve.asset_id,
            share_id=self.share.asset_id,
            balance_fee=self.balance_fee,
            protocol_fee_rate=self.protocol_fee_rate,
            asset_ids=[a.asset_id for a in self.assets],
        )

    def snapshot(self) -> PoolSnapshot:
        return PoolSnapshot(
            version=self.version,
            assets=tuple(self.assets),
            balances=tuple(self.vault.get(a.asset_id) for a in self.assets),
            total_supply=self.total_supply,
            due_protocol_fees=self.due_protocol_fees,
            config=self.pricing_config(),
        )

    def _check_version(self, version: Optional[int]) -> None:
        if version is None or version != self.version:
            raise ReplayWindowViolation(
                f"settlement priced at version {version}, pool is at {self.version}"
            )

    def total_value(self) -> int:
        snap = self.snapshot()
        return aggregate(
            snap.assets, snap.balances, -1, -1, snap.total_supply,
            snap.due_protocol_fees, self.feed, snap.config,
        ).total_value

    def valuation(self, asset_id: str) -> Valuation:
        snap = self.snapshot()
        idx = snap.index_of(asset_id)
        return aggregate(
            snap.assets, snap.balances, idx, -1, snap.total_supply,
            snap.due_protocol_fees, self.feed, snap.config,
        ).valuation_a

    def share_price(self) -> int:
        snap = self.snapshot()
        return share_price(self.total_value(), snap.circulating_supply, self.share.decimals)

    # -----------------------------
    # Swaps
    # -----------------------------
    def _side_tiers(
        self,
        snap: PoolSnapshot,
        idx: int,
        valuation: Valuation,
        total_value: int,
        is_buy_side: bool,
        amount: Optional[int] = None,
        counter_value: Optional[int] = None,
    ) -> Tuple[Tier, ...]:
        """Tiers for one side of a swap.

        Reserve pricing depends on trade size, so it takes either the token
        ``amount`` on this side or the USD ``counter_value`` from the other side.
        """
        asset = snap.assets[idx]
        cfg = snap.config
        if asset.asset_id == cfg.share_id:
            return (Tier(price=share_price(total_value, snap.circulating_supply, asset.decimals)),)
        if asset.asset_id == cfg.reserve_id:
            balance = snap.balances[idx]
            if amount is not None:
                if is_buy_side:
                    price = reserve_deposit_price(total_value, balance, amount, asset.decimals)
                else:
                    price = reserve_withdraw_price(total_value, balance, amount, asset.decimals)
            elif is_buy_side:
                price = reserve_price_for_value_out(total_value, balance, counter_value, asset.decimals)
            else:
                price = reserve_price_for_value_in(total_value, balance, counter_value, asset.decimals)
            return (Tier(price=price),)
        return tier_price(
            total_value, asset, cfg.record(asset.asset_id), valuation, cfg, self.feed, is_buy_side
        )

    def quote_swap(self, request: SwapRequest, snapshot: Optional[PoolSnapshot] = None) -> SwapQuote:
        snap = snapshot or self.snapshot()
        cfg = snap.config
        if cfg.swaps_locked:
            raise SwapsLocked(f"swaps are locked on pool {self.pool_id}")
        if request.amount <= 0:
            raise PricingError("swap amount must be positive")
        if request.asset_in == request.asset_out:
            raise InvalidAsset("asset_in and asset_out must differ")
        i = snap.index_of(request.asset_in)
        o = snap.index_of(request.asset_out)
        for idx in (i, o):
            aid = snap.assets[idx].asset_id
            if not cfg.is_base(aid) and not cfg.record(aid).category.is_tiered:
                raise InvalidAsset(f"{aid} is not tradable")
        asset_in, asset_out = snap.assets[i], snap.assets[o]

        agg = aggregate(
            snap.assets, snap.balances, i, o, snap.total_supply,
            snap.due_protocol_fees, self.feed, cfg,
        )
        total = agg.total_value

        if request.kind == SwapKind.GIVEN_IN:
            in_tiers = self._side_tiers(snap, i, agg.valuation_a, total, True, amount=request.amount)
            value_in, _ = value_given_in(in_tiers, request.amount, asset_in.decimals)
            out_tiers = self._side_tiers(snap, o, agg.valuation_b, total, False, counter_value=value_in)
            outcome = walk_given_in(in_tiers, out_tiers, request.amount, asset_in.decimals, asset_out.decimals)
        else:
            out_tiers = self._side_tiers(snap, o, agg.valuation_b, total, False, amount=request.amount)
            value_out, _ = value_given_out(out_tiers, request.amount, asset_out.decimals)
            in_tiers = self._side_tiers(snap, i, agg.valuation_a, total, True, counter_value=value_out)
            outcome = walk_given_out(in_tiers, out_tiers, request.amount, asset_in.decimals, asset_out.decimals)

        if outcome.amount_out > snap.balances[o]:
            raise InsufficientBalance(
                f"{asset_out.asset_id}: out {outcome.amount_out} exceeds balance {snap.balances[o]}"
            )
        if outcome.amount_out == 0:
            raise InsufficientBalance(f"{asset_out.asset_id}: trade rounds to zero output")

        fee = protocol_fee(
            request,
            (asset_in, asset_out),
            (agg.valuation_a, agg.valuation_b),
            outcome,
            share_price(total, snap.circulating_supply, self.share.decimals),
            cfg,
            self.share.decimals,
        )
        return SwapQuote(
            request=request,
            version=snap.version,
            total_value=total,
            valuation_in=agg.valuation_a,
            valuation_out=agg.valuation_b,
            in_tiers=in_tiers,
            out_tiers=out_tiers,
            outcome=outcome,
            protocol_fee=fee,
        )

    def swap(self, request: SwapRequest, tick: int = 0) -> SwapReceipt:
        self._check_version(request.version)
        quote = self.quote_swap(request)

        before = dict(self.vault.inventory) if self.debug_balances else {}
        self.vault.add(request.asset_in, quote.amount_in)
        self.vault.sub(request.asset_out, quote.amount_out)
        self.due_protocol_fees += quote.protocol_fee
        self._bump()
        self._debug_balance_change("swap", before)

        r = SwapReceipt(
            tick=tick, pool_id=self.pool_id,
            asset_in=request.asset_in, amount_in=quote.amount_in,
            asset_out=request.asset_out, amount_out=quote.amount_out,
            protocol_fee=quote.protocol_fee, version=self.version,
            status="executed", fail_reason=None,
        )
        self.receipts.add(r)
        return r

    # -----------------------------
    # Join / exit / fees
    # -----------------------------
    def join(self, amounts_in: Sequence[int], version: Optional[int]) -> JoinResult:
        """Deposit a basket and mint shares.

        With shares in circulation the join is proportional: the scarcest
        deposit relative to its pool balance sets the mint, and only the
        matching share of every other asset is taken. The first join mints
        one share per USD of ordinary value deposited.
        """
        self._check_version(version)
        snap = self.snapshot()
        if len(amounts_in) != len(snap.assets):
            raise LengthMismatch(f"{len(snap.assets)} assets but {len(amounts_in)} amounts")
        share_idx = snap.share_index
        if amounts_in[share_idx]:
            raise InvalidAsset("cannot join with share tokens")
        if any(a < 0 for a in amounts_in):
            raise PricingError("join amounts must be non-negative")

        supply = snap.circulating_supply
        if supply == 0:
            agg = aggregate(
                snap.assets, list(amounts_in), -1, -1, snap.total_supply,
                snap.due_protocol_fees, self.feed, snap.config,
            )
            shares = from_usd(agg.total_value, ONE, self.share.decimals)
            used = tuple(int(a) for a in amounts_in)
        else:
            ratios = [
                mul_div(amounts_in[idx], ONE, balance)
                for idx, balance in enumerate(snap.balances)
                if idx != share_idx and balance > 0
            ]
            if not ratios:
                raise InsufficientBalance("pool holds no assets to join against")
            shares = mul_div(supply, min(ratios), ONE)
            used = tuple(
                0 if idx == share_idx or balance == 0 else mul_div_up(balance, shares, supply)
                for idx, balance in enumerate(snap.balances)
            )
        if shares == 0:
            raise InsufficientBalance("join mints zero shares")

        before = dict(self.vault.inventory) if self.debug_balances else {}
        for asset, amount in zip(snap.assets, used):
            if amount:
                self.vault.add(asset.asset_id, amount)
        self.total_supply += shares
        self._bump()
        self._debug_balance_change("join", before)
        logger.debug("[JOIN] pool=%s shares=%d", self.pool_id, shares)
        return JoinResult(shares_out=shares, amounts_in=used)

    def exit(self, shares_in: int, version: Optional[int]) -> ExitResult:
        """Burn shares for a pro-rata slice of every non-share balance."""
        self._check_version(version)
        snap = self.snapshot()
        share_idx = snap.share_index
        public = snap.total_supply - snap.balances[share_idx]
        if shares_in <= 0 or shares_in > public:
            raise InsufficientBalance(f"cannot exit {shares_in} shares, {public} in public hands")
        supply = snap.circulating_supply
        amounts = tuple(
            0 if idx == share_idx else mul_div(balance, shares_in, supply)
            for idx, balance in enumerate(snap.balances)
        )

        before = dict(self.vault.inventory) if self.debug_balances else {}
        for asset, amount in zip(snap.assets, amounts):
            if amount:
                self.vault.sub(asset.asset_id, amount)
        self.total_supply -= shares_in
        self._bump()
        self._debug_balance_change("exit", before)
        logger.debug("[EXIT] pool=%s shares=%d", self.pool_id, shares_in)
        return ExitResult(shares_in=shares_in, amounts_out=amounts)

    def collect_protocol_fees(self) -> int:
        """Mint accrued protocol fees; circulating supply already counts them."""
        minted = self.due_protocol_fees
        if minted == 0:
            return 0
        self.total_supply += minted
        self.due_protocol_fees = 0
        self._bump()
        logger.debug("[FEES] pool=%s minted=%d", self.pool_id, minted)
        return minted

    def value_of(self, asset_id: str, amount: int) -> int:
        asset = self._asset(asset_id)
        return to_usd(amount, self.valuation(asset_id).price, asset.decimals)
