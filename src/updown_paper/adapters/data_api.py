from __future__ import annotations
from typing import List, Optional

import httpx

from updown_paper.models import Activity


def _f(x, default: float = 0.0) -> float:
    try:
        return float(x)
    except (TypeError, ValueError):
        return default


def _ts(x) -> Optional[float]:
    if x in (None, ""):
        return None
    v = _f(x, -1.0)
    if v <= 0:
        return None
    # some rows carry milliseconds
    return v / 1000.0 if v > 1e11 else v


class ActivityFeed:
    def __init__(self, base_url: str, limit: int = 200, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.limit = int(limit)
        self.transport = transport
        self.call_count = 0

    @staticmethod
    def _to_activity(row: dict) -> Activity | None:
        ts = _ts(row.get("timestamp"))
        if ts is None:
            return None
        idx = row.get("outcomeIndex")
        try:
            outcome_index = int(idx) if idx not in (None, "") else None
        except (TypeError, ValueError):
            outcome_index = None
        return Activity(
            transaction_hash=str(row.get("transactionHash") or ""),
            timestamp=ts,
            condition_id=str(row.get("conditionId") or ""),
            slug=str(row.get("slug") or ""),
            event_slug=str(row.get("eventSlug") or ""),
            title=str(row.get("title") or ""),
            outcome_index=outcome_index,
            outcome=str(row.get("outcome") or ""),
            asset=str(row.get("asset") or ""),
            size=_f(row.get("size")),
            price=_f(row.get("price")),
            usdc_size=_f(row.get("usdcSize")),
            side=str(row.get("side") or "BUY").upper(),
            end_date=_ts(row.get("endDate")),
        )

    def fetch(self, user: str) -> List[Activity]:
        """Newest-last list of TRADE activity for `user`. HTTP errors propagate."""
        params = {"user": user, "type": "TRADE", "limit": str(self.limit)}
        with httpx.Client(timeout=15.0, transport=self.transport) as client:
            self.call_count += 1
            r = client.get(f"{self.base_url}/activity", params=params)
            r.raise_for_status()
            rows = r.json()
        out: List[Activity] = []
        for row in rows if isinstance(rows, list) else []:
            a = self._to_activity(row or {})
            if a:
                out.append(a)
        out.sort(key=lambda a: a.timestamp)
        return out
