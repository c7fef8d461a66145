from __future__ import annotations
from typing import Optional

from updown_paper.models import ResolvedMarket, UP, DOWN

WIN_THRESHOLD = 0.95


def determine_winner(price_up: Optional[float], price_down: Optional[float], threshold: float = WIN_THRESHOLD) -> str:
    """Winner from terminal prices.

    A side at or above `threshold` wins outright; otherwise the strictly
    higher price wins. A tie, including two missing prices, settles DOWN.
    """
    up = float(price_up) if price_up is not None else 0.0
    down = float(price_down) if price_down is not None else 0.0
    if up >= threshold > down:
        return UP
    if down >= threshold > up:
        return DOWN
    return UP if up > down else DOWN


def settle(
    ledger,
    market_key: str,
    price_up: Optional[float],
    price_down: Optional[float],
    now: float,
    reason: str = "expired",
    threshold: float = WIN_THRESHOLD,
) -> Optional[ResolvedMarket]:
    winner = determine_winner(price_up, price_down, threshold)
    return ledger.resolve_market(market_key, winner, price_up, price_down, now, reason=reason)
