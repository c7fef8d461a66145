from __future__ import annotations
from typing import Optional, Set

from updown_paper.engine.settlement import WIN_THRESHOLD, determine_winner
from updown_paper.models import MarketRecord, UP, WatcherResult, WatcherStats


def value_record(record: MarketRecord, now: float, threshold: float = WIN_THRESHOLD) -> WatcherResult:
    """Settle watched aggregates at $1 for the winning side and $0 for the loser."""
    winner = determine_winner(record.price_up, record.price_down, threshold)
    payout = record.shares_up if winner == UP else record.shares_down
    invested = record.total_invested
    pnl = payout - invested
    return WatcherResult(
        key=record.key,
        name=record.name,
        condition_id=record.condition_id,
        category=record.category,
        end_ts=record.end_ts,
        shares_up=record.shares_up,
        shares_down=record.shares_down,
        cost_up=record.cost_up,
        cost_down=record.cost_down,
        trades_up=record.trades_up,
        trades_down=record.trades_down,
        final_price_up=record.price_up,
        final_price_down=record.price_down,
        winner=winner,
        payout=payout,
        pnl=pnl,
        pnl_pct=(pnl / invested * 100.0) if invested > 0 else 0.0,
        settled_at=now,
    )


class WatcherTally:
    def __init__(self, threshold: float = WIN_THRESHOLD):
        self.threshold = threshold
        self._logged: Set[str] = set()
        self._stats = WatcherStats()

    def record(self, record: MarketRecord, now: float) -> Optional[WatcherResult]:
        uid = record.condition_id or f"{record.key}:{record.end_ts}"
        if uid in self._logged:
            return None
        if record.shares_up <= 0 and record.shares_down <= 0:
            return None
        self._logged.add(uid)

        result = value_record(record, now, self.threshold)
        s = self._stats
        s.markets += 1
        s.total_invested += record.total_invested
        s.total_pnl += result.pnl
        s.pnl_pct = (s.total_pnl / s.total_invested * 100.0) if s.total_invested > 0 else 0.0
        return result

    def stats(self) -> WatcherStats:
        return self._stats.model_copy()
