from __future__ import annotations
import json
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import httpx


@dataclass
class GammaMarketRef:
    condition_id: str
    question: str
    slug: str
    up_token: str
    down_token: str
    end_ts: Optional[float] = None


def _parse_end(value) -> Optional[float]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        v = float(value)
        return v / 1000.0 if v > 1e10 else v
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def _as_list(value) -> list:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    return value if isinstance(value, list) else []


class GammaAdapter:
    def __init__(self, base_url: str, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.call_count = 0

    def _counted_get(self, client: httpx.Client, url: str, **kwargs):
        self.call_count += 1
        return client.get(url, **kwargs)

    @staticmethod
    def _to_ref(m: dict, event: dict | None = None, fallback_slug: str = "") -> GammaMarketRef | None:
        event = event or {}
        token_ids = _as_list(m.get("clobTokenIds"))
        if len(token_ids) < 2:
            return None
        up, down = str(token_ids[0]), str(token_ids[1])
        outcomes = [str(o).lower() for o in _as_list(m.get("outcomes"))]
        if outcomes and outcomes[0] in ("down", "no"):
            up, down = down, up
        return GammaMarketRef(
            condition_id=str(m.get("conditionId") or ""),
            question=str(m.get("question") or event.get("title") or fallback_slug),
            slug=str(m.get("slug") or event.get("slug") or fallback_slug),
            up_token=up,
            down_token=down,
            end_ts=_parse_end(m.get("endDate") or event.get("endDate")),
        )

    def fetch_market_by_condition(self, condition_id: str) -> GammaMarketRef | None:
        with httpx.Client(timeout=15.0, transport=self.transport) as client:
            r = self._counted_get(client, f"{self.base_url}/markets", params={"condition_ids": condition_id})
            if r.status_code != 200:
                return None
            arr = r.json()
        for m in arr if isinstance(arr, list) else []:
            ref = self._to_ref(m)
            if ref:
                return ref
        return None

    def fetch_event_market(self, slug: str) -> GammaMarketRef | None:
        with httpx.Client(timeout=15.0, transport=self.transport) as client:
            r = self._counted_get(client, f"{self.base_url}/events", params={"slug": slug})
            if r.status_code != 200:
                return None
            arr = r.json()
        if not isinstance(arr, list) or not arr:
            return None
        event = arr[0] or {}
        markets = event.get("markets") or []
        if not markets:
            return None
        return self._to_ref(markets[0], event, fallback_slug=slug)

    def discover_current_updown(self, assets: List[str], now: float, bucket_seconds: int = 900) -> List[GammaMarketRef]:
        # Rolling slugs look like btc-updown-15m-<window start>.
        start = (int(now) // bucket_seconds) * bucket_seconds
        minutes = bucket_seconds // 60
        refs: List[GammaMarketRef] = []
        for asset in assets:
            slug = f"{asset.lower()}-updown-{minutes}m-{start}"
            ref = self.fetch_event_market(slug)
            if ref is None:
                continue
            if ref.end_ts is None:
                ref.end_ts = float(start + bucket_seconds)
            refs.append(ref)
        return refs
