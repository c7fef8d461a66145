from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Optional

from rich import print

from updown_paper.models import LedgerStats, MarketRecord, PaperMarketPosition, WatcherStats


def _px(x) -> str:
    return f"{x:.3f}" if x is not None else "-"


def market_lines(records: List[MarketRecord], positions: List[PaperMarketPosition], now: float) -> List[str]:
    by_key = {p.key: p for p in positions}
    lines = []
    for r in records:
        left = f"{int(r.end_ts - now)}s" if r.end_ts is not None else "-"
        line = (
            f"[bold]{r.key}[/bold] {r.category or '?'} up={_px(r.price_up)} down={_px(r.price_down)} "
            f"left={left} watched=${r.total_invested:.2f} ({r.trades_up}/{r.trades_down})"
        )
        pos = by_key.get(r.key)
        if pos is not None:
            line += (
                f" | paper ${pos.up.total_cost:.2f}/{pos.down.total_cost:.2f}"
                f" avg {pos.up.average_price:.3f}/{pos.down.average_price:.3f}"
                f" upnl=${pos.unrealized_pnl:.2f}"
            )
        lines.append(line)
    return lines


def stats_line(stats: LedgerStats) -> str:
    color = "green" if stats.realized_pnl >= 0 else "red"
    return (
        f"[bold]Paper[/bold] cash=${stats.available_capital:.2f} open={stats.active_markets} "
        f"invested=${stats.open_invested:.2f} upnl=${stats.unrealized_pnl:.2f} "
        f"[{color}]pnl=${stats.realized_pnl:.2f}[/{color}] resolved={stats.resolved_markets} "
        f"win_rate={stats.win_rate * 100:.1f}% trades={stats.total_trades}"
    )


def watcher_line(stats: WatcherStats) -> str:
    color = "green" if stats.total_pnl >= 0 else "red"
    return (
        f"[bold]Watched[/bold] settled={stats.markets} invested=${stats.total_invested:.2f} "
        f"[{color}]pnl=${stats.total_pnl:.2f} ({stats.pnl_pct:+.1f}%)[/{color}]"
    )


def render(records: List[MarketRecord], positions: List[PaperMarketPosition], stats: LedgerStats, now: float, watcher: Optional[WatcherStats] = None) -> None:
    stamp = datetime.fromtimestamp(now, timezone.utc).strftime("%H:%M:%S")
    print(f"[bold]Markets[/bold] {len(records)} @ {stamp}Z")
    for line in market_lines(records, positions, now):
        print(line)
    print(stats_line(stats))
    if watcher is not None and watcher.markets:
        print(watcher_line(watcher))
