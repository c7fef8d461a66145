from __future__ import annotations
from collections import deque
from typing import Callable, Dict, List, Optional, Set

from updown_paper.engine import identity
from updown_paper.models import Activity, IngestResult, MarketRecord, UP


def _has_aggregates(record: MarketRecord) -> bool:
    return record.shares_up > 0 or record.shares_down > 0


class MarketRegistry:
    def __init__(
        self,
        max_markets: int = 20,
        stale_after_s: float = 7 * 24 * 3600.0,
        dedup_memory: int = 10000,
        protected: Optional[Callable[[str], bool]] = None,
    ):
        self.max_markets = int(max_markets)
        self.stale_after_s = float(stale_after_s)
        self._records: Dict[str, MarketRecord] = {}
        self._seen: Set[str] = set()
        self._seen_order: deque = deque()
        self._dedup_memory = int(dedup_memory)
        self._removed: List[str] = []
        self._retired: Dict[str, MarketRecord] = {}
        self._ended: List[MarketRecord] = []
        # keys the cap must not evict (open paper positions)
        self.protected = protected

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def get(self, key: str) -> Optional[MarketRecord]:
        return self._records.get(key)

    def keys(self) -> List[str]:
        return sorted(self._records)

    def _remember(self, tid: str) -> bool:
        if tid in self._seen:
            return False
        self._seen.add(tid)
        self._seen_order.append(tid)
        while len(self._seen_order) > self._dedup_memory:
            self._seen.discard(self._seen_order.popleft())
        return True

    def _remove(self, key: str, removed: List[str]) -> None:
        record = self._records.pop(key, None)
        if record is None:
            return
        removed.append(key)
        self._removed.append(key)
        if record.end_ts is not None and _has_aggregates(record):
            # valued once its window is over
            self._retired[f"{key}:{record.end_ts}"] = record

    @staticmethod
    def _window_order(end_ts: Optional[float], fallback: float) -> float:
        return float(end_ts) if end_ts is not None else float(fallback)

    def _rotate(self, key: str, category: str, order: float, removed: List[str]) -> bool:
        """Drop older windows of `category`. False when a newer one is already live."""
        if not category:
            return True
        rivals = [r for r in self._records.values() if r.category == category and r.key != key]
        for r in rivals:
            if self._window_order(r.end_ts, r.last_update) > order:
                return False
        for r in rivals:
            self._remove(r.key, removed)
        return True

    def _drop_earlier_windows(self, record: MarketRecord, removed: List[str]) -> None:
        start = identity.window_start_minutes(record.name)
        if start is None:
            return
        base = identity.base_market_name(record.name)
        for other in list(self._records.values()):
            if other.key == record.key or identity.base_market_name(other.name) != base:
                continue
            other_start = identity.window_start_minutes(other.name)
            if other_start is not None and other_start < start:
                self._remove(other.key, removed)

    def _enforce_cap(self, keep: str, removed: List[str]) -> None:
        while len(self._records) > self.max_markets:
            candidates = [
                r for r in self._records.values() if r.key != keep and not (self.protected and self.protected(r.key))
            ]
            if not candidates:
                return
            oldest = min(candidates, key=lambda r: (r.last_update, r.key))
            self._remove(oldest.key, removed)

    def _upsert(self, activity: Activity, now: float, removed: List[str]) -> Optional[tuple]:
        key = identity.market_key(activity)
        text = " ".join(x for x in (activity.title, activity.slug, activity.event_slug) if x)
        category = identity.rotating_type(text) or ""
        end_ts = identity.infer_end_ts(activity, now)
        order = self._window_order(end_ts, activity.timestamp)

        if not self._rotate(key, category, order, removed):
            return None

        record = self._records.get(key)
        if record is not None and end_ts is not None and record.end_ts is not None:
            # text-derived keys are shared by consecutive windows
            if end_ts < record.end_ts:
                return None
            if end_ts > record.end_ts:
                self._remove(key, removed)
                record = None
        created = record is None
        if created:
            record = MarketRecord(
                key=key,
                name=activity.title or activity.slug or key,
                slug=activity.slug or activity.event_slug,
                category=category,
                condition_id=activity.condition_id,
                end_ts=end_ts,
                first_seen=now,
                last_update=activity.timestamp,
            )
            self._records[key] = record
            self._drop_earlier_windows(record, removed)
        else:
            if end_ts is not None:
                record.end_ts = end_ts
            if activity.condition_id:
                record.condition_id = activity.condition_id
        return record, created

    def record_trade(self, activity: Activity, now: float) -> Optional[IngestResult]:
        if not self._remember(identity.trade_id(activity)):
            return None

        removed: List[str] = []
        upserted = self._upsert(activity, now, removed)
        if upserted is None:
            return None
        record, created = upserted

        side = identity.resolve_side(activity)
        if activity.asset:
            if side == UP and not record.asset_up:
                record.asset_up = activity.asset
            elif side != UP and not record.asset_down:
                record.asset_down = activity.asset

        if activity.side.upper() == "BUY":
            if side == UP:
                record.shares_up += activity.size
                record.cost_up += activity.usdc_size
                record.trades_up += 1
            else:
                record.shares_down += activity.size
                record.cost_down += activity.usdc_size
                record.trades_down += 1

        record.last_update = max(record.last_update, activity.timestamp)
        self._enforce_cap(record.key, removed)
        return IngestResult(key=record.key, created=created, removed=removed)

    def register_market(
        self,
        condition_id: str,
        name: str,
        slug: str,
        asset_up: str,
        asset_down: str,
        end_ts: Optional[float],
        now: float,
    ) -> Optional[IngestResult]:
        activity = Activity(
            timestamp=now,
            condition_id=condition_id,
            slug=slug,
            title=name,
            end_date=end_ts,
        )
        removed: List[str] = []
        upserted = self._upsert(activity, now, removed)
        if upserted is None:
            return None
        record, created = upserted
        record.asset_up = asset_up or record.asset_up
        record.asset_down = asset_down or record.asset_down
        record.last_update = max(record.last_update, now)
        self._enforce_cap(record.key, removed)
        return IngestResult(key=record.key, created=created, removed=removed)

    def fill_metadata(
        self,
        key: str,
        asset_up: str = "",
        asset_down: str = "",
        end_ts: Optional[float] = None,
    ) -> bool:
        record = self._records.get(key)
        if record is None:
            return False
        record.asset_up = record.asset_up or asset_up
        record.asset_down = record.asset_down or asset_down
        if record.end_ts is None and end_ts is not None:
            record.end_ts = float(end_ts)
        return True

    def refresh_prices(self, key: str, price_up: Optional[float], price_down: Optional[float], now: float) -> bool:
        record = self._records.get(key)
        if record is None:
            return False
        if price_up is not None:
            record.price_up = float(price_up)
        if price_down is not None:
            record.price_down = float(price_down)
        if price_up is not None or price_down is not None:
            record.price_updated_at = now
        return True

    def prune_expired(self, now: float) -> Set[str]:
        removed: List[str] = []
        for record in list(self._records.values()):
            if record.end_ts is not None:
                ended = now >= record.end_ts
            else:
                ended = identity.time_window_elapsed(record.name, now)
            stale = now - record.last_update > self.stale_after_s
            if ended and record.end_ts is None and _has_aggregates(record):
                self._ended.append(record)
            if ended or stale:
                self._remove(record.key, removed)

        for rid, record in sorted(self._retired.items()):
            if now >= record.end_ts:
                del self._retired[rid]
                self._ended.append(record)
        return set(removed)

    def take_removed(self) -> List[str]:
        out, self._removed = self._removed, []
        return out

    def take_ended(self) -> List[MarketRecord]:
        # records with watched aggregates whose window is over
        out, self._ended = self._ended, []
        return out

    def snapshot(self) -> List[MarketRecord]:
        records = [r.model_copy(deep=True) for r in self._records.values()]
        records.sort(key=lambda r: (-r.total_invested, r.key))
        return records
