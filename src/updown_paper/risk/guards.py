from updown_paper.config import LedgerConfig
from updown_paper.models import TradeCheck

EPS = 1e-9


def approve(ledger, market_key: str, amount_usd: float, cfg: LedgerConfig) -> TradeCheck:
    if amount_usd <= 0:
        return TradeCheck(approved=False, reason="invalid_amount")
    if ledger.available_capital + EPS < amount_usd:
        return TradeCheck(approved=False, reason="insufficient_cash")

    pos = ledger.position(market_key)
    invested = pos.total_invested if pos else 0.0
    if invested + amount_usd > cfg.max_per_market_usd + EPS:
        return TradeCheck(approved=False, reason="market_cap")

    if pos is None and len(ledger.active_positions()) >= cfg.max_active_markets:
        return TradeCheck(approved=False, reason="max_open_markets")

    deployed = sum(p.total_invested for p in ledger.active_positions()) + amount_usd
    if deployed > cfg.max_deployed_fraction * ledger.starting_capital + EPS:
        return TradeCheck(approved=False, reason="max_deployed")
    return TradeCheck(approved=True, reason="ok")
