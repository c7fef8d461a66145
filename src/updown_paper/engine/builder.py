"""Incremental build phase: steer a market's position toward its target split."""
from __future__ import annotations
import math
from typing import List, Optional

from updown_paper.config import BuildConfig
from updown_paper.engine.sizing import RandomSource, draw_shares, next_trade_gap
from updown_paper.models import (
    MarketRecord,
    PaperMarketPosition,
    PaperTrade,
    PositionBuildState,
    TradeIntent,
    UP,
    DOWN,
)


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _floor2(x: float) -> float:
    return math.floor(x * 100.0) / 100.0


def start_build(record: MarketRecord, available: float, cfg: BuildConfig, rnd: RandomSource, now: float) -> Optional[PositionBuildState]:
    target = min(cfg.per_asset_cap_usd, available * cfg.aggressiveness)
    if target < cfg.min_position_usd:
        return None
    ratio = cfg.base_ratio + rnd.uniform(-cfg.ratio_variance, cfg.ratio_variance)
    ratio = _clamp(ratio, 0.5 - cfg.ratio_band, 0.5 + cfg.ratio_band)
    return PositionBuildState(
        target_up_usd=target * ratio,
        target_down_usd=target * (1.0 - ratio),
        up_ratio=ratio,
        start_price_up=float(record.price_up),
        start_price_down=float(record.price_down),
        started_at=now,
        next_trade_at=now,
        next_momentum_check_at=now + cfg.momentum_check_s,
    )


def sync_from_position(state: PositionBuildState, pos: Optional[PaperMarketPosition]) -> None:
    if pos is None:
        return
    state.invested_up = pos.up.total_cost
    state.invested_down = pos.down.total_cost
    state.shares_up = pos.up.shares
    state.shares_down = pos.down.shares
    state.avg_up = pos.up.average_price
    state.avg_down = pos.down.average_price


def update_momentum(state: PositionBuildState, price_up: float, price_down: float, cfg: BuildConfig, now: float) -> bool:
    if now < state.next_momentum_check_at:
        return False
    state.next_momentum_check_at = now + cfg.momentum_check_s
    move_up = price_up - state.start_price_up
    move_down = price_down - state.start_price_down
    if abs(move_up) < cfg.momentum_min_move and abs(move_down) < cfg.momentum_min_move:
        return False
    state.momentum_bias = _clamp((move_up - move_down) / 2.0 * cfg.momentum_scale, -1.0, 1.0)
    return True


def maybe_grow_targets(state: PositionBuildState, cfg: BuildConfig) -> bool:
    fill = cfg.target_fill_threshold
    if state.invested_up >= state.target_up_usd * fill and state.invested_down >= state.target_down_usd * fill:
        state.target_up_usd *= 1.0 + cfg.target_growth
        state.target_down_usd *= 1.0 + cfg.target_growth
        state.growth_count += 1
        return True
    return False


def plan_legs(
    state: PositionBuildState,
    price_up: float,
    price_down: float,
    available: float,
    cfg: BuildConfig,
    rnd: RandomSource,
) -> List[tuple]:
    gaps = {
        UP: max(0.0, state.target_up_usd - state.invested_up),
        DOWN: max(0.0, state.target_down_usd - state.invested_down),
    }
    prices = {UP: price_up, DOWN: price_down}
    bias = state.momentum_bias
    factors = {
        UP: max(0.0, 1.0 + bias * cfg.momentum_sensitivity),
        DOWN: max(0.0, 1.0 - bias * cfg.momentum_sensitivity),
    }

    if rnd.random() < cfg.two_sided_probability:
        sides = [UP, DOWN]
    else:
        p_up = _clamp(state.up_ratio + 0.5 * bias * cfg.momentum_sensitivity, 0.05, 0.95)
        if gaps[UP] <= 0:
            p_up = 0.0
        elif gaps[DOWN] <= 0:
            p_up = 1.0
        sides = [UP] if rnd.random() < p_up else [DOWN]

    legs = {}
    for side in sides:
        if gaps[side] <= 0:
            continue
        shares = draw_shares(rnd, cfg.share_jitter) * factors[side]
        if shares * prices[side] > gaps[side]:
            shares = gaps[side] / prices[side]
        legs[side] = shares

    total = sum(legs[s] * prices[s] for s in legs)
    if total > available and total > 0:
        scale = available / total
        legs = {s: sh * scale for s, sh in legs.items()}

    out = []
    for side, shares in legs.items():
        shares = _floor2(shares)
        if shares < cfg.min_trade_shares:
            continue
        out.append((side, shares, prices[side]))
    return out


def build_step(
    state: PositionBuildState,
    record: MarketRecord,
    ledger,
    cfg: BuildConfig,
    rnd: RandomSource,
    now: float,
) -> List[PaperTrade]:
    if now < state.next_trade_at:
        return []
    price_up = float(record.price_up)
    price_down = float(record.price_down)
    update_momentum(state, price_up, price_down, cfg, now)
    sync_from_position(state, ledger.position(record.key))

    trades: List[PaperTrade] = []
    for side, shares, price in plan_legs(state, price_up, price_down, ledger.available_capital, cfg, rnd):
        check = ledger.can_trade(record.key, shares * price)
        if not check.approved:
            continue
        trade = ledger.record_trade(
            TradeIntent(
                market_key=record.key,
                side=side,
                shares=shares,
                price=price,
                kind="build",
                reason=f"build bias={state.momentum_bias:+.2f}",
                market_name=record.name,
                slug=record.slug,
                condition_id=record.condition_id,
                category=record.category,
                end_ts=record.end_ts,
            ),
            now,
        )
        if trade is not None:
            trades.append(trade)

    sync_from_position(state, ledger.position(record.key))
    state.trade_count += len(trades)
    maybe_grow_targets(state, cfg)
    state.next_trade_at = now + next_trade_gap(rnd)
    return trades
