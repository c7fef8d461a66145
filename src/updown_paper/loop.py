import signal
import time
from typing import List, Optional

import httpx
from rich import print

from updown_paper.adapters.clob import ClobAdapter
from updown_paper.adapters.data_api import ActivityFeed
from updown_paper.adapters.gamma import GammaAdapter
from updown_paper.config import BotConfig, load_bot_config
from updown_paper.display import render
from updown_paper.engine.decision import DecisionEngine
from updown_paper.engine.registry import MarketRegistry
from updown_paper.engine.sizing import RandomSource
from updown_paper.engine.watcher import WatcherTally
from updown_paper.models import PaperTrade
from updown_paper.sim.paper import PositionLedger
from updown_paper.utils.storage import EventRecorder, append_event, load_state, save_state


class PaperBot:
    def __init__(
        self,
        cfg: BotConfig,
        feed: Optional[ActivityFeed] = None,
        clob: Optional[ClobAdapter] = None,
        gamma: Optional[GammaAdapter] = None,
        recorder=None,
        rnd: Optional[RandomSource] = None,
        ledger: Optional[PositionLedger] = None,
        clock=time.time,
    ):
        self.cfg = cfg
        self.clock = clock
        self.recorder = recorder if recorder is not None else EventRecorder(cfg.storage)
        self.ledger = ledger or PositionLedger(cfg.ledger, on_event=self.recorder)
        self.registry = MarketRegistry(
            max_markets=cfg.registry.max_markets,
            stale_after_s=cfg.registry.stale_after_s,
            dedup_memory=cfg.registry.dedup_memory,
        )
        self.engine = DecisionEngine(
            self.registry,
            self.ledger,
            cfg.build,
            cfg.arbitrage,
            rnd=rnd or RandomSource(cfg.app.seed),
            on_event=self.recorder,
        )
        self.feed = feed or ActivityFeed(cfg.data.activity_base, cfg.data.activity_limit)
        self.clob = clob or ClobAdapter(cfg.data.clob_rest_base)
        self.gamma = gamma or GammaAdapter(cfg.data.gamma_base)
        self.watcher = WatcherTally()
        self.stop_requested = False
        self._metadata_tried: set = set()
        self._last_display = 0.0
        self._last_snapshot = 0.0

    def request_stop(self, *_):
        self.stop_requested = True

    def _fetch_error(self, source: str, err: Exception, **extra) -> None:
        print(f"[yellow]FETCH ERROR[/yellow] {source} {err}")
        self.recorder({"type": "fetch_error", "source": source, "error": str(err), **extra})

    def ingest(self, now: float) -> int:
        accepted = 0
        for user in self.cfg.data.user_addresses:
            try:
                activity = self.feed.fetch(user)
            except httpx.HTTPError as e:
                self._fetch_error("activity", e, user=user)
                continue
            for a in activity:
                if self.registry.record_trade(a, now) is not None:
                    accepted += 1

        if self.cfg.data.discover_updown_15m and self.cfg.data.discover_assets:
            try:
                refs = self.gamma.discover_current_updown(self.cfg.data.discover_assets, now)
            except httpx.HTTPError as e:
                self._fetch_error("gamma_discovery", e)
                refs = []
            for ref in refs:
                self.registry.register_market(
                    condition_id=ref.condition_id,
                    name=ref.question,
                    slug=ref.slug,
                    asset_up=ref.up_token,
                    asset_down=ref.down_token,
                    end_ts=ref.end_ts,
                    now=now,
                )
        return accepted

    def fill_metadata(self) -> None:
        for key in self.registry.keys():
            record = self.registry.get(key)
            if record is None or not record.condition_id:
                continue
            if record.asset_up and record.asset_down and record.end_ts is not None:
                continue
            if record.condition_id in self._metadata_tried:
                continue
            self._metadata_tried.add(record.condition_id)
            try:
                ref = self.gamma.fetch_market_by_condition(record.condition_id)
            except httpx.HTTPError as e:
                self._fetch_error("gamma_market", e, market_key=key)
                continue
            if ref is not None:
                self.registry.fill_metadata(key, ref.up_token, ref.down_token, ref.end_ts)

    def refresh_prices(self, now: float) -> None:
        for key in self.registry.keys():
            record = self.registry.get(key)
            if record is None or not record.asset_up or not record.asset_down:
                continue
            try:
                up, down = self.clob.fetch_pair(record.asset_up, record.asset_down)
            except httpx.HTTPError as e:
                self._fetch_error("clob", e, market_key=key)
                continue
            self.registry.refresh_prices(key, up, down, now)

    def value_watched(self, now: float) -> None:
        for record in self.registry.take_ended():
            result = self.watcher.record(record, now)
            if result is not None:
                self.recorder({"type": "watcher_pnl", "timestamp": now, **result.model_dump()})

    def run_once(self, now: Optional[float] = None) -> List[PaperTrade]:
        now = self.clock() if now is None else now
        self.registry.prune_expired(now)
        self.engine.handle_removed(self.registry.take_removed(), now)
        self.value_watched(now)

        self.ingest(now)
        # rotation and cap evictions from this batch
        self.engine.handle_removed(self.registry.take_removed(), now)

        self.fill_metadata()
        self.refresh_prices(now)
        trades = self.engine.tick(now)

        if now - self._last_display >= self.cfg.app.display_every_s:
            self._last_display = now
            render(self.registry.snapshot(), self.ledger.active_positions(), self.ledger.stats(), now, self.watcher.stats())
        if now - self._last_snapshot >= self.cfg.app.snapshot_every_s:
            self._last_snapshot = now
            save_state(self.cfg.storage.state_path, self.ledger.state())
        return trades

    def run_forever(self) -> None:
        signal.signal(signal.SIGINT, self.request_stop)
        signal.signal(signal.SIGTERM, self.request_stop)
        interval = float(self.cfg.app.loop_seconds)

        while not self.stop_requested:
            cycle_start = time.time()
            try:
                self.run_once()
            except Exception as e:
                print(f"[red]LOOP ERROR[/red] {e}")
                append_event(self.cfg.storage.events_path, {"type": "loop_error", "error": str(e)})

            elapsed = time.time() - cycle_start
            if elapsed < interval and not self.stop_requested:
                time.sleep(interval - elapsed)

        save_state(self.cfg.storage.state_path, self.ledger.state())
        print(f"[bold]Stopped[/bold] {self.ledger.stats().model_dump()}")


def build_bot(cfg: BotConfig, resume: bool = False) -> PaperBot:
    recorder = EventRecorder(cfg.storage)
    if resume:
        state = load_state(cfg.storage.state_path, cfg.ledger.starting_capital_usd)
        ledger = PositionLedger.from_state(state, cfg.ledger, on_event=recorder)
    else:
        # Fresh paper ledger on every restart.
        ledger = PositionLedger(cfg.ledger, on_event=recorder)
        save_state(cfg.storage.state_path, ledger.state())
    return PaperBot(cfg, recorder=recorder, ledger=ledger)


def run_forever(config_path: str, resume: bool = False):
    cfg = load_bot_config(config_path)
    build_bot(cfg, resume=resume).run_forever()


if __name__ == "__main__":
    run_forever("config/default.yaml")
