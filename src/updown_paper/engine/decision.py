from __future__ import annotations
from typing import Callable, Dict, Iterable, List, Optional, Set

from rich import print

from updown_paper.config import ArbitrageConfig, BuildConfig
from updown_paper.engine.arbitrage import arbitrage_key, execute_arbitrage_trade
from updown_paper.engine.builder import build_step, start_build, sync_from_position
from updown_paper.engine.registry import MarketRegistry
from updown_paper.engine.settlement import settle
from updown_paper.engine.sizing import RandomSource
from updown_paper.models import MarketRecord, MarketSlot, PaperTrade, ResolvedMarket

DISCOVERED = "discovered"
BUILDING = "building"
ARBITRAGE = "arbitrage"
SKIPPED = "skipped"
SETTLED = "settled"


class DecisionEngine:
    # phases only move forward: discovered -> building -> arbitrage -> settled,
    # or discovered -> skipped

    def __init__(
        self,
        registry: MarketRegistry,
        ledger,
        build_cfg: BuildConfig,
        arb_cfg: ArbitrageConfig,
        rnd: Optional[RandomSource] = None,
        on_event: Optional[Callable[[dict], None]] = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.build_cfg = build_cfg
        self.arb_cfg = arb_cfg
        self.rnd = rnd or RandomSource()
        self.on_event = on_event
        self.slots: Dict[str, MarketSlot] = {}
        self._arbitrage_fired: Set[str] = set()
        # removed from the registry with an open position, settled at end_ts
        self._detached: Dict[str, MarketSlot] = {}
        registry.protected = self.holds

    def _emit(self, event: dict) -> None:
        if self.on_event is not None:
            self.on_event(event)

    def _set_phase(self, slot: MarketSlot, phase: str, now: float, **extra) -> None:
        if slot.phase == phase:
            return
        self._emit({"type": "phase", "market_key": slot.key, "from": slot.phase, "to": phase, "timestamp": now, **extra})
        slot.phase = phase

    def slot(self, key: str) -> MarketSlot:
        if key not in self.slots:
            self.slots[key] = MarketSlot(key=key)
        return self.slots[key]

    def tick(self, now: float) -> List[PaperTrade]:
        trades: List[PaperTrade] = []
        self.settle_detached(now)
        for key in self.registry.keys():
            record = self.registry.get(key)
            if record is None:
                continue
            try:
                trades.extend(self.step(record, now))
            except Exception as e:
                print(f"[red]ENGINE ERROR[/red] {key} {e}")
                self._emit({"type": "market_error", "market_key": key, "error": str(e), "timestamp": now})
        return trades

    def step(self, record: MarketRecord, now: float) -> List[PaperTrade]:
        if record.key in self._detached:
            return []
        slot = self.slot(record.key)
        if slot.phase in (SETTLED, SKIPPED):
            return []

        if record.price_up is not None:
            slot.last_price_up = record.price_up
        if record.price_down is not None:
            slot.last_price_down = record.price_down
        slot.end_ts = record.end_ts
        self.ledger.mark_prices(record.key, record.price_up, record.price_down)

        if record.end_ts is not None and now >= record.end_ts:
            self.settle_market(record.key, now, reason="expired")
            return []

        if not record.asset_up or not record.asset_down:
            return []
        if record.price_up is None or record.price_down is None or record.price_up <= 0 or record.price_down <= 0:
            return []

        if record.end_ts is not None and record.end_ts - now < self.build_cfg.expiration_window_s:
            self._set_phase(slot, ARBITRAGE, now)
            slot.build = None
            return self._arbitrage_step(slot, record, now)

        if slot.phase == DISCOVERED:
            state = start_build(record, self.ledger.available_capital, self.build_cfg, self.rnd, now)
            if state is None:
                slot.skip_reason = "below_min_position"
                self._set_phase(slot, SKIPPED, now, reason=slot.skip_reason)
                return []
            sync_from_position(state, self.ledger.position(record.key))
            slot.build = state
            self._set_phase(slot, BUILDING, now, target_usd=round(state.total_target, 2))

        return build_step(slot.build, record, self.ledger, self.build_cfg, self.rnd, now)

    def _arbitrage_step(self, slot: MarketSlot, record: MarketRecord, now: float) -> List[PaperTrade]:
        akey = arbitrage_key(record.key, record.end_ts)
        if akey in self._arbitrage_fired:
            return []
        trade = execute_arbitrage_trade(record, self.ledger, self.arb_cfg, self.build_cfg.min_trade_shares, now)
        if trade is None:
            return []
        self._arbitrage_fired.add(akey)
        slot.arbitrage_key = akey
        return [trade]

    def settle_market(self, key: str, now: float, reason: str = "expired") -> Optional[ResolvedMarket]:
        return self._settle_slot(self.slot(key), now, reason)

    def _settle_slot(self, slot: MarketSlot, now: float, reason: str) -> Optional[ResolvedMarket]:
        resolved = None
        if self.ledger.position(slot.key) is not None:
            resolved = settle(self.ledger, slot.key, slot.last_price_up, slot.last_price_down, now, reason=reason)
        slot.build = None
        slot.settled = resolved
        self._set_phase(slot, SETTLED, now, reason=reason)
        return resolved

    def holds(self, key: str) -> bool:
        if self.ledger.position(key) is not None:
            return True
        slot = self.slots.get(key)
        return slot is not None and slot.phase in (BUILDING, ARBITRAGE)

    def settle_detached(self, now: float) -> List[ResolvedMarket]:
        out: List[ResolvedMarket] = []
        for key, slot in sorted(self._detached.items()):
            if now < slot.end_ts:
                continue
            del self._detached[key]
            resolved = self._settle_slot(slot, now, "expired")
            if resolved is not None:
                out.append(resolved)
        return out

    def handle_removed(self, keys: Iterable[str], now: float) -> List[ResolvedMarket]:
        out: List[ResolvedMarket] = []
        for key in keys:
            if key in self._detached:
                continue
            slot = self.slots.get(key)
            if self.ledger.position(key) is not None:
                live = slot is not None and slot.end_ts is not None and now < slot.end_ts
                if live and key not in self.registry:
                    # position stays open until the window actually ends
                    self._detached[key] = slot
                    slot.build = None
                    self._set_phase(slot, ARBITRAGE, now, reason="removed")
                else:
                    resolved = self.settle_market(key, now, reason="removed" if live else "expired")
                    if resolved is not None:
                        out.append(resolved)
            self.slots.pop(key, None)
            self._arbitrage_fired = {k for k in self._arbitrage_fired if not k.startswith(f"{key}:")}
        return out
