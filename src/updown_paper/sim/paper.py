from __future__ import annotations
import math
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from rich import print

from updown_paper.config import LedgerConfig
from updown_paper.models import (
    LedgerState,
    LedgerStats,
    PaperMarketPosition,
    PaperTrade,
    ResolvedMarket,
    TradeCheck,
    TradeIntent,
    SIDES,
    UP,
)
from updown_paper.risk.guards import approve

EPS = 1e-9


def iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


class PositionLedger:
    def __init__(self, cfg: LedgerConfig, on_event: Optional[Callable[[dict], None]] = None):
        self.cfg = cfg
        self.starting_capital = float(cfg.starting_capital_usd)
        self.available_capital = self.starting_capital
        self.realized_pnl = 0.0
        self.on_event = on_event
        self._positions: Dict[str, PaperMarketPosition] = {}
        self._resolved: List[ResolvedMarket] = []
        self._trades: List[PaperTrade] = []
        self._seq = 0

    @classmethod
    def from_state(cls, state: LedgerState, cfg: LedgerConfig, on_event=None) -> "PositionLedger":
        ledger = cls(cfg, on_event=on_event)
        ledger.starting_capital = state.starting_capital
        ledger.available_capital = state.available_capital
        ledger.realized_pnl = state.realized_pnl
        ledger._seq = state.trade_seq
        ledger._positions = {p.key: p for p in state.positions}
        ledger._resolved = list(state.resolved)
        ledger._trades = list(state.trades)
        return ledger

    def _emit(self, event: dict) -> None:
        if self.on_event is not None:
            self.on_event(event)

    def _reject(self, op: str, key: str, reason: str, **extra) -> None:
        print(f"[yellow]LEDGER[/yellow] {op} rejected for {key}: {reason}")
        self._emit({"type": "ledger_error", "op": op, "market_key": key, "reason": reason, **extra})

    # -- trades -----------------------------------------------------------

    def can_trade(self, market_key: str, amount_usd: float) -> TradeCheck:
        return approve(self, market_key, amount_usd, self.cfg)

    def record_trade(self, intent: TradeIntent, now: float) -> Optional[PaperTrade]:
        shares = float(intent.shares)
        price = float(intent.price)
        if intent.side not in SIDES:
            self._reject("record_trade", intent.market_key, "invalid_side", side=intent.side)
            return None
        if not (math.isfinite(shares) and shares > 0):
            self._reject("record_trade", intent.market_key, "invalid_shares", shares=shares)
            return None
        if not (math.isfinite(price) and 0 < price <= 1):
            self._reject("record_trade", intent.market_key, "invalid_price", price=price)
            return None
        cost = shares * price
        if cost <= 0:
            self._reject("record_trade", intent.market_key, "invalid_cost")
            return None
        if cost > self.available_capital + EPS:
            self._reject(
                "record_trade",
                intent.market_key,
                "insufficient_cash",
                notional=round(cost, 6),
                available=round(self.available_capital, 6),
            )
            return None

        pos = self._positions.get(intent.market_key)
        if pos is None:
            pos = PaperMarketPosition(
                key=intent.market_key,
                name=intent.market_name,
                slug=intent.slug,
                condition_id=intent.condition_id,
                category=intent.category,
                end_ts=intent.end_ts,
                opened_at=now,
            )
            self._positions[intent.market_key] = pos
        elif intent.end_ts is not None:
            pos.end_ts = intent.end_ts

        leg = pos.leg(intent.side)
        leg.shares += shares
        leg.total_cost += cost
        leg.average_price = leg.total_cost / leg.shares
        leg.trade_count += 1
        if leg.first_trade_at is None:
            leg.first_trade_at = now
        leg.last_trade_at = now
        self.available_capital -= cost

        self._seq += 1
        trade = PaperTrade(
            trade_id=f"paper-{self._seq:06d}",
            timestamp=now,
            market_key=intent.market_key,
            market_name=pos.name,
            slug=pos.slug,
            condition_id=pos.condition_id,
            side=intent.side,
            shares=shares,
            price=price,
            total_cost=cost,
            kind=intent.kind,
            reason=intent.reason,
            average_price=leg.average_price,
        )
        self._trades.append(trade)
        self._emit(
            {
                "type": "trade",
                "trade_id": trade.trade_id,
                "timestamp": now,
                "time": iso(now),
                "market_key": trade.market_key,
                "market_name": trade.market_name,
                "side": trade.side,
                "kind": trade.kind,
                "shares": round(shares, 4),
                "price": round(price, 4),
                "notional": round(cost, 4),
                "avg_price": round(leg.average_price, 6),
                "reason": trade.reason,
                "available": round(self.available_capital, 4),
            }
        )
        return trade

    def mark_prices(self, market_key: str, price_up: Optional[float], price_down: Optional[float]) -> bool:
        pos = self._positions.get(market_key)
        if pos is None:
            return False
        if price_up is not None:
            pos.price_up = float(price_up)
        if price_down is not None:
            pos.price_down = float(price_down)
        return True

    # -- settlement -------------------------------------------------------

    def resolve_market(
        self,
        market_key: str,
        winner: str,
        final_price_up: Optional[float],
        final_price_down: Optional[float],
        now: float,
        reason: str = "",
    ) -> Optional[ResolvedMarket]:
        if winner not in SIDES:
            self._reject("resolve_market", market_key, "invalid_winner", winner=winner)
            return None
        pos = self._positions.pop(market_key, None)
        if pos is None:
            self._reject("resolve_market", market_key, "unknown_market")
            return None

        payout = pos.leg(winner).shares * 1.0
        invested = pos.total_invested
        pnl = payout - invested
        resolved = ResolvedMarket(
            key=pos.key,
            name=pos.name,
            slug=pos.slug,
            condition_id=pos.condition_id,
            category=pos.category,
            invested_up=pos.up.total_cost,
            invested_down=pos.down.total_cost,
            total_invested=invested,
            shares_up=pos.up.shares,
            shares_down=pos.down.shares,
            trades_up=pos.up.trade_count,
            trades_down=pos.down.trade_count,
            final_price_up=final_price_up,
            final_price_down=final_price_down,
            winner=winner,
            payout=payout,
            realized_pnl=pnl,
            realized_pnl_pct=(pnl / invested * 100.0) if invested > 0 else 0.0,
            opened_at=pos.opened_at,
            resolved_at=now,
            reason=reason,
        )
        self._resolved.append(resolved)
        self.available_capital += payout
        self.realized_pnl += pnl
        self._emit(
            {
                "type": "resolution",
                "timestamp": now,
                "time": iso(now),
                "market_key": resolved.key,
                "market_name": resolved.name,
                **resolved.model_dump(),
            }
        )
        return resolved

    # -- accessors --------------------------------------------------------

    def position(self, market_key: str) -> Optional[PaperMarketPosition]:
        return self._positions.get(market_key)

    def active_positions(self) -> List[PaperMarketPosition]:
        return list(self._positions.values())

    def resolved_markets(self) -> List[ResolvedMarket]:
        return list(self._resolved)

    def trades(self, market_key: Optional[str] = None) -> List[PaperTrade]:
        if market_key is None:
            return list(self._trades)
        return [t for t in self._trades if t.market_key == market_key]

    def stats(self) -> LedgerStats:
        open_pos = self.active_positions()
        wins = sum(1 for r in self._resolved if r.realized_pnl > 0)
        losses = sum(1 for r in self._resolved if r.realized_pnl < 0)
        settled = len(self._resolved)
        trades_up = sum(1 for t in self._trades if t.side == UP)
        return LedgerStats(
            starting_capital=self.starting_capital,
            available_capital=self.available_capital,
            markets_traded=len({t.market_key for t in self._trades}),
            active_markets=len(open_pos),
            resolved_markets=settled,
            open_invested=sum(p.total_invested for p in open_pos),
            open_value=sum(p.current_value for p in open_pos),
            realized_pnl=self.realized_pnl,
            unrealized_pnl=sum(p.unrealized_pnl for p in open_pos),
            wins=wins,
            losses=losses,
            win_rate=(wins / settled) if settled else 0.0,
            trades_up=trades_up,
            trades_down=len(self._trades) - trades_up,
            total_trades=len(self._trades),
            avg_pnl_per_market=(self.realized_pnl / settled) if settled else 0.0,
        )

    def state(self) -> LedgerState:
        return LedgerState(
            starting_capital=self.starting_capital,
            available_capital=self.available_capital,
            realized_pnl=self.realized_pnl,
            trade_seq=self._seq,
            positions=[p.model_copy(deep=True) for p in self._positions.values()],
            resolved=list(self._resolved),
            trades=list(self._trades),
        )
