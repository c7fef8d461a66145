from __future__ import annotations
import csv
import json
from pathlib import Path
from datetime import datetime, timezone

from rich import print

from updown_paper.config import StorageConfig
from updown_paper.models import LedgerState

TRADE_FIELDS = [
    "timestamp",
    "time",
    "market_key",
    "market_name",
    "side",
    "kind",
    "shares",
    "price",
    "notional",
    "avg_price",
    "reason",
]

RESOLUTION_FIELDS = [
    "timestamp",
    "time",
    "market_key",
    "market_name",
    "condition_id",
    "invested_up",
    "invested_down",
    "total_invested",
    "shares_up",
    "shares_down",
    "final_price_up",
    "final_price_down",
    "payout",
    "realized_pnl",
    "realized_pnl_pct",
    "trades_up",
    "trades_down",
    "winner",
    "reason",
]


WATCHER_FIELDS = [
    "timestamp",
    "time",
    "key",
    "name",
    "condition_id",
    "shares_up",
    "shares_down",
    "cost_up",
    "cost_down",
    "trades_up",
    "trades_down",
    "final_price_up",
    "final_price_down",
    "winner",
    "payout",
    "pnl",
    "pnl_pct",
]


def load_state(path: str, starting_capital: float) -> LedgerState:
    p = Path(path)
    if not p.exists():
        return LedgerState(starting_capital=starting_capital, available_capital=starting_capital)
    data = json.loads(p.read_text())
    return LedgerState.model_validate(data)


def save_state(path: str, state: LedgerState) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(state.model_dump_json(indent=2))


def append_event(path: str, event: dict) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    event = {"ts": datetime.now(timezone.utc).isoformat(), **event}
    with p.open("a") as f:
        f.write(json.dumps(event, default=str) + "\n")


def append_csv_row(path: str, fields: list, row: dict) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    new_file = not p.exists() or p.stat().st_size == 0
    with p.open("a", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fields, extrasaction="ignore")
        if new_file:
            writer.writeheader()
        writer.writerow(row)


class EventRecorder:
    def __init__(self, cfg: StorageConfig, echo: bool = True):
        self.cfg = cfg
        self.echo = echo

    def __call__(self, event: dict) -> None:
        append_event(self.cfg.events_path, event)
        kind = event.get("type")
        if kind == "trade":
            append_csv_row(self.cfg.trades_csv, TRADE_FIELDS, event)
            if self.echo:
                color = "green" if event.get("kind") == "build" else "cyan"
                print(
                    f"[{color}]PAPER {event.get('kind', '').upper()}[/{color}] {event.get('market_key')} "
                    f"{event.get('side')} {event.get('shares')}@{event.get('price')} "
                    f"=${event.get('notional')} avg={event.get('avg_price')}"
                )
        elif kind == "resolution":
            append_csv_row(self.cfg.resolutions_csv, RESOLUTION_FIELDS, event)
            if self.echo:
                pnl = float(event.get("realized_pnl") or 0.0)
                color = "green" if pnl >= 0 else "red"
                print(
                    f"[magenta]RESOLVED[/magenta] {event.get('market_key')} winner={event.get('winner')} "
                    f"payout=${float(event.get('payout') or 0.0):.2f} [{color}]pnl=${pnl:.2f}[/{color}]"
                )
        elif kind == "watcher_pnl":
            row = {"time": datetime.fromtimestamp(float(event.get("timestamp") or 0.0), timezone.utc).isoformat(), **event}
            append_csv_row(self.cfg.watcher_csv, WATCHER_FIELDS, row)
            if self.echo:
                pnl = float(event.get("pnl") or 0.0)
                color = "green" if pnl >= 0 else "red"
                print(
                    f"[blue]WATCHED[/blue] {event.get('key')} winner={event.get('winner')} "
                    f"invested=${float(event.get('cost_up') or 0.0) + float(event.get('cost_down') or 0.0):.2f} "
                    f"[{color}]pnl=${pnl:.2f}[/{color}]"
                )
