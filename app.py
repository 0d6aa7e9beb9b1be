import json
import time
import streamlit as st
import pandas as pd

from amm.config import ScenarioConfig
from amm.core import SwapKind, SwapRequest
from amm.engine import SimulationEngine
from amm.errors import PricingError
from amm.fixed_point import from_float, to_float

st.set_page_config(page_title="Basket AMM Pricing Simulator", layout="wide")


def get_engine() -> SimulationEngine:
    if "engine" not in st.session_state:
        cfg = ScenarioConfig()
        st.session_state.cfg = cfg
        st.session_state.seed = 1
        st.session_state.engine = SimulationEngine(cfg=cfg, seed=st.session_state.seed)
    return st.session_state.engine


def reset_engine(reset_config: bool = False) -> None:
    if reset_config:
        cfg = ScenarioConfig()
        seed = 1
        st.session_state.cfg = cfg
        st.session_state.seed = seed
    else:
        cfg = st.session_state.get("cfg", ScenarioConfig())
        seed = st.session_state.get("seed", 1)
    st.session_state.engine = SimulationEngine(cfg=cfg, seed=seed)


engine = get_engine()

st.title("Basket AMM Pricing Simulator")
st.caption("Ordinary assets are tier-priced around target weights; RSV is constant-product priced, SHARE pro rata.")

def _fmt_duration(seconds: float) -> str:
    if seconds < 0:
        seconds = 0.0
    mins = int(seconds // 60)
    secs = seconds - (mins * 60)
    return f"{mins}m {secs:0.1f}s"

def _fmt(value: float) -> str:
    return f"{float(value):,.2f}"

def _render_kpi_grid(kpis, columns: int = 5) -> None:
    for idx in range(0, len(kpis), columns):
        row = kpis[idx: idx + columns]
        cols = st.columns(columns)
        for col, (label, value) in zip(cols, row):
            col.metric(label, value)

def _format_event_meta(meta) -> str:
    if meta is None:
        return ""
    if isinstance(meta, str):
        return meta
    try:
        return json.dumps(meta, sort_keys=True)
    except TypeError:
        return str(meta)

with st.sidebar:
    st.header("Sim Controls")

    st.subheader("Run")
    if st.button("Restart simulation"):
        reset_engine(reset_config=True)
        engine = st.session_state.engine
    st.caption("Restart resets the pool to tick 0 with default settings.")
    if "seed" not in st.session_state:
        st.session_state.seed = 1
    st.number_input("Random seed", min_value=1, max_value=100000, key="seed")

    run_ticks = st.slider("Ticks to run", min_value=1, max_value=500, value=25)
    c1, c2 = st.columns(2)
    run_one = c1.button("Step 1 tick")
    run_many = c2.button("Run N ticks")
    progress_bar = st.progress(0.0, text="Idle")
    if run_one:
        engine.step(1)
        progress_bar.progress(1.0, text="Run progress: 100%")
    if run_many:
        total = int(run_ticks)
        start_ts = time.time()
        for idx in range(total):
            engine.step(1)
            progress_bar.progress((idx + 1) / total, text=f"Run progress: {(idx + 1) / total:.0%}")
        progress_bar.progress(1.0, text=f"Run progress: 100% ({_fmt_duration(time.time() - start_ts)})")
    st.caption(f"Current tick: {engine.tick}")

    st.subheader("Fees")
    balance_fee = st.slider(
        "Balance fee (tenths of a percent)",
        min_value=0,
        max_value=254,
        value=int(engine.pool.balance_fee if not engine.pool.pricing_config().swaps_locked else 0),
        help="Reward/penalty applied to trades that move an asset toward/away from target.",
    )
    if balance_fee != engine.pool.balance_fee and not engine.pool.pricing_config().swaps_locked:
        engine.pool.set_balance_fee(balance_fee)
    engine.cfg.swaps_per_tick = st.number_input(
        "Swaps per tick", min_value=0, max_value=500, value=int(engine.cfg.swaps_per_tick), step=5,
    )
    engine.cfg.swap_size_mean_frac = st.number_input(
        "Swap size mean (fraction of basket value)",
        min_value=0.0,
        max_value=0.5,
        value=float(engine.cfg.swap_size_mean_frac),
        step=0.005,
        format="%.3f",
    )
    if st.button("Collect protocol fees now"):
        minted = engine.pool.collect_protocol_fees()
        st.success(f"Minted {_fmt(to_float(minted))} SHARE")

tab_overview, tab_assets, tab_quote, tab_events = st.tabs(["Overview", "Allocation", "Quote", "Events"])

pool_df = engine.metrics.pool_df()
asset_df = engine.metrics.asset_df()

with tab_overview:
    if pool_df.empty:
        st.info("No metrics yet.")
    else:
        latest = pool_df.iloc[-1]
        _render_kpi_grid([
            ("Basket value (USD)", _fmt(latest["total_ordinary_value_usd"])),
            ("Share price", f"{latest['share_price_usd']:.6f}"),
            ("Reserve price", f"{latest['reserve_price_usd']:.6f}"),
            ("Circulating SHARE", _fmt(latest["circulating_supply"])),
            ("Due protocol fees", _fmt(latest["due_protocol_fees"])),
            ("Swaps executed (tick)", int(latest["swaps_executed_tick"])),
            ("Swaps rejected (tick)", int(latest["swaps_failed_tick"])),
            ("Volume (tick, USD)", _fmt(latest["swap_volume_usd_tick"])),
            ("Fees minted (SHARE)", _fmt(latest["fees_minted_total"])),
            ("State version", int(latest["version"])),
        ])
        st.subheader("Prices")
        st.line_chart(pool_df.set_index("tick")[["share_price_usd", "reserve_price_usd"]])
        st.subheader("Basket value and volume")
        st.line_chart(pool_df.set_index("tick")[["total_ordinary_value_usd", "swap_volume_usd_tick"]])

with tab_assets:
    if asset_df.empty:
        st.info("No allocation rows yet.")
    else:
        latest_tick = asset_df["tick"].max()
        current = asset_df[asset_df["tick"] == latest_tick].copy()
        st.subheader(f"Allocation at tick {latest_tick}")
        st.dataframe(
            current[["asset_id", "category", "weight", "price_usd", "value_usd", "target_usd", "allocation_ratio", "zone"]],
            use_container_width=True,
        )
        st.bar_chart(current.set_index("asset_id")[["value_usd", "target_usd"]])
        st.subheader("Allocation ratio over time")
        ratio = asset_df.pivot_table(index="tick", columns="asset_id", values="allocation_ratio")
        st.line_chart(ratio)

with tab_quote:
    st.subheader("Quote a swap")
    asset_ids = [a.asset_id for a in engine.pool.assets]
    c1, c2, c3, c4 = st.columns(4)
    asset_in = c1.selectbox("Asset in", asset_ids, index=min(2, len(asset_ids) - 1))
    asset_out = c2.selectbox("Asset out", asset_ids, index=min(3, len(asset_ids) - 1))
    kind_label = c3.selectbox("Kind", [k.value for k in SwapKind])
    amount = c4.number_input("Amount (whole tokens)", min_value=0.0, value=1.0)
    if st.button("Quote"):
        kind = SwapKind(kind_label)
        sized = asset_out if kind == SwapKind.GIVEN_OUT else asset_in
        decimals = {a.asset_id: a.decimals for a in engine.pool.assets}
        request = SwapRequest(asset_in, asset_out, from_float(amount, decimals[sized]), kind=kind)
        try:
            quote = engine.pool.quote_swap(request)
        except PricingError as err:
            st.error(f"{err.code}: {err}")
        else:
            _render_kpi_grid([
                ("Amount in", _fmt(to_float(quote.amount_in, decimals[asset_in]))),
                ("Amount out", _fmt(to_float(quote.amount_out, decimals[asset_out]))),
                ("Protocol fee (SHARE)", f"{to_float(quote.protocol_fee):.8f}"),
                ("Priced at version", quote.version),
            ], columns=4)
            tiers = pd.DataFrame(
                [
                    {"side": side, "tier": idx + 1, "price_usd": to_float(t.price),
                     "capacity": to_float(t.capacity, decimals[aid]) if t.capacity else None}
                    for side, aid, tiers in (("in", asset_in, quote.in_tiers), ("out", asset_out, quote.out_tiers))
                    for idx, t in enumerate(tiers)
                ]
            )
            st.dataframe(tiers, use_container_width=True)

with tab_events:
    events = engine.log.tail(200)
    if not events:
        st.info("No events yet.")
    else:
        st.dataframe(
            pd.DataFrame([
                {
                    "tick": e.tick,
                    "type": e.event_type,
                    "asset_in": e.asset_in,
                    "asset_out": e.asset_out,
                    "amount": e.amount,
                    "meta": _format_event_meta(e.meta),
                }
                for e in reversed(events)
            ]),
            use_container_width=True,
        )
