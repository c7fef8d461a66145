from __future__ import annotations
from typing import Optional, Tuple

from updown_paper.config import ArbitrageConfig
from updown_paper.models import MarketRecord, PaperTrade, TradeIntent, UP, DOWN


def arbitrage_key(market_key: str, end_ts: Optional[float]) -> str:
    minute = round(end_ts / 60.0) if end_ts is not None else 0
    return f"{market_key}:{minute}"


def find_cheap_loser(price_up: Optional[float], price_down: Optional[float], cfg: ArbitrageConfig) -> Optional[Tuple[str, float]]:
    if price_up is None or price_down is None:
        return None
    if price_up >= cfg.clear_threshold and cfg.min_loser_price < price_down <= cfg.max_loser_price:
        return DOWN, price_down
    if price_down >= cfg.clear_threshold and cfg.min_loser_price < price_up <= cfg.max_loser_price:
        return UP, price_up
    return None


def execute_arbitrage_trade(
    record: MarketRecord,
    ledger,
    cfg: ArbitrageConfig,
    min_trade_shares: float,
    now: float,
) -> Optional[PaperTrade]:
    # contested prices: let the position ride
    found = find_cheap_loser(record.price_up, record.price_down, cfg)
    if found is None:
        return None
    side, price = found

    available = ledger.available_capital
    if available < cfg.min_available_capital_usd:
        return None
    notional = min(cfg.max_notional_usd, available - cfg.min_available_capital_usd)
    shares = notional / price
    if notional <= 0 or shares < min_trade_shares:
        return None
    if not ledger.can_trade(record.key, notional).approved:
        return None

    winner_price = record.price_up if side == DOWN else record.price_down
    return ledger.record_trade(
        TradeIntent(
            market_key=record.key,
            side=side,
            shares=shares,
            price=price,
            kind="arbitrage",
            reason=f"clear {UP if side == DOWN else DOWN}@{winner_price:.3f}",
            market_name=record.name,
            slug=record.slug,
            condition_id=record.condition_id,
            category=record.category,
            end_ts=record.end_ts,
        ),
        now,
    )
