from __future__ import annotations
from typing import Optional, Tuple
import httpx


class ClobAdapter:
    def __init__(self, base_url: str, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.call_count = 0

    def _fetch_book(self, client: httpx.Client, token_id: str) -> Optional[dict]:
        self.call_count += 1
        r = client.get(f"{self.base_url}/book", params={"token_id": token_id})
        if r.status_code != 200:
            return None
        return r.json()

    @staticmethod
    def _prices(levels: list) -> list:
        vals = []
        for lvl in levels or []:
            try:
                px = float((lvl or {}).get("price", 0.0))
            except (TypeError, ValueError):
                continue
            if 0 < px <= 1:
                vals.append(px)
        return vals

    @classmethod
    def book_mid(cls, book: Optional[dict]) -> Optional[float]:
        if not book:
            return None
        bids = cls._prices(book.get("bids", []))
        asks = cls._prices(book.get("asks", []))
        if not bids or not asks:
            return None
        return (max(bids) + min(asks)) / 2.0

    def fetch_pair(self, token_up: str, token_down: str) -> Tuple[Optional[float], Optional[float]]:
        with httpx.Client(timeout=15.0, transport=self.transport) as client:
            up = self.book_mid(self._fetch_book(client, token_up))
            down = self.book_mid(self._fetch_book(client, token_down))
        if up is None or down is None:
            return up, down
        total = up + down
        if total > 0 and abs(total - 1.0) > 0.01:
            return up / total, down / total
        return up, down
