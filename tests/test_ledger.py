from __future__ import annotations

import pytest

from conftest import WINDOW_START, buy
from updown_paper.config import LedgerConfig
from updown_paper.models import DOWN, UP, TradeIntent
from updown_paper.sim.paper import PositionLedger


def _conserved(ledger: PositionLedger) -> bool:
    open_invested = sum(p.total_invested for p in ledger.active_positions())
    archived = ledger.resolved_markets()
    expected = ledger.starting_capital - sum(r.total_invested for r in archived) + sum(r.payout for r in archived)
    return ledger.available_capital + open_invested == pytest.approx(expected)


class TestRecordTrade:
    def test_first_trade_opens_position(self, ledger: PositionLedger) -> None:
        trade = buy(ledger, "BTC-UpDown-15", UP, 10, 0.5, market_name="Bitcoin Up or Down")
        pos = ledger.position("BTC-UpDown-15")

        assert trade.trade_id == "paper-000001"
        assert trade.total_cost == pytest.approx(5.0)
        assert pos.up.shares == 10 and pos.up.trade_count == 1
        assert pos.down.shares == 0 and pos.down.average_price == 0
        assert pos.name == "Bitcoin Up or Down"
        assert ledger.available_capital == pytest.approx(9995.0)

    def test_weighted_average_price(self, ledger: PositionLedger) -> None:
        fills = [(10, 0.40), (30, 0.50), (60, 0.55)]
        for shares, price in fills:
            buy(ledger, "m", DOWN, shares, price)

        leg = ledger.position("m").down
        expected = sum(s * p for s, p in fills) / sum(s for s, _ in fills)
        assert leg.average_price == pytest.approx(expected)
        assert leg.total_cost == pytest.approx(sum(t.total_cost for t in ledger.trades("m")))
        assert ledger.trades("m")[-1].average_price == pytest.approx(expected)

    def test_rejects_notional_above_available_capital(self, events: list) -> None:
        ledger = PositionLedger(LedgerConfig(starting_capital_usd=10, max_per_market_usd=10), on_event=events.append)
        assert buy(ledger, "m", UP, 30, 0.5) is None

        assert ledger.available_capital == 10
        assert ledger.position("m") is None
        assert ledger.trades() == []
        assert events[-1]["type"] == "ledger_error"
        assert events[-1]["reason"] == "insufficient_cash"

    @pytest.mark.parametrize(
        "side, shares, price",
        [(UP, 0, 0.5), (UP, -1, 0.5), (UP, 10, 0.0), (UP, 10, 1.5), ("SIDEWAYS", 10, 0.5)],
    )
    def test_rejects_invalid_input(self, ledger: PositionLedger, side: str, shares: float, price: float) -> None:
        assert ledger.record_trade(TradeIntent(market_key="m", side=side, shares=shares, price=price), WINDOW_START) is None
        assert ledger.available_capital == ledger.starting_capital

    def test_trade_event_row(self, ledger: PositionLedger, events: list) -> None:
        buy(ledger, "m", UP, 20, 0.25, kind="arbitrage", reason="clear")
        ev = events[-1]
        assert ev["type"] == "trade"
        assert (ev["market_key"], ev["side"], ev["kind"]) == ("m", UP, "arbitrage")
        assert ev["notional"] == 5.0
        assert ev["avg_price"] == 0.25


class TestResolveMarket:
    def test_balanced_position_breaks_even(self, ledger: PositionLedger) -> None:
        buy(ledger, "m", UP, 300, 0.5)
        buy(ledger, "m", DOWN, 300, 0.5)
        assert ledger.available_capital == pytest.approx(9700.0)

        res = ledger.resolve_market("m", UP, 0.99, 0.01, now=WINDOW_START + 900)

        assert res.payout == pytest.approx(300.0)
        assert res.realized_pnl == pytest.approx(0.0)
        assert res.winner == UP
        assert ledger.available_capital == pytest.approx(10000.0)
        assert ledger.position("m") is None

    def test_second_resolution_is_noop(self, ledger: PositionLedger, events: list) -> None:
        buy(ledger, "m", UP, 100, 0.4)
        first = ledger.resolve_market("m", UP, 1.0, 0.0, now=WINDOW_START)
        capital = ledger.available_capital

        assert first.realized_pnl == pytest.approx(60.0)
        assert ledger.resolve_market("m", UP, 1.0, 0.0, now=WINDOW_START) is None
        assert ledger.available_capital == capital
        assert len(ledger.resolved_markets()) == 1
        assert events[-1]["reason"] == "unknown_market"

    def test_resolved_record_is_frozen(self, ledger: PositionLedger) -> None:
        buy(ledger, "m", UP, 10, 0.5)
        res = ledger.resolve_market("m", DOWN, 0.0, 1.0, now=WINDOW_START)
        with pytest.raises(Exception):
            res.payout = 100.0
        assert res.realized_pnl_pct == pytest.approx(-100.0)

    def test_key_reused_after_resolution_opens_fresh_position(self, ledger: PositionLedger) -> None:
        buy(ledger, "m", UP, 10, 0.5)
        ledger.resolve_market("m", UP, 1.0, 0.0, now=WINDOW_START)
        buy(ledger, "m", DOWN, 4, 0.5, now=WINDOW_START + 1)

        pos = ledger.position("m")
        assert pos.up.shares == 0 and pos.down.shares == 4
        assert pos.opened_at == WINDOW_START + 1

    def test_capital_conserved_across_lifecycle(self, ledger: PositionLedger) -> None:
        buy(ledger, "a", UP, 120, 0.45)
        buy(ledger, "a", DOWN, 80, 0.52)
        buy(ledger, "b", UP, 50, 0.3)
        assert _conserved(ledger)
        ledger.resolve_market("a", DOWN, 0.02, 0.98, now=WINDOW_START)
        assert _conserved(ledger)
        buy(ledger, "b", DOWN, 1000, 0.03)
        ledger.resolve_market("b", UP, 0.97, 0.03, now=WINDOW_START)
        assert _conserved(ledger)
        assert ledger.realized_pnl == pytest.approx(ledger.available_capital - ledger.starting_capital)


class TestStatsAndState:
    def test_stats(self, ledger: PositionLedger) -> None:
        buy(ledger, "win", UP, 100, 0.5)
        buy(ledger, "lose", DOWN, 100, 0.5)
        buy(ledger, "open", UP, 10, 0.5)
        ledger.mark_prices("open", 0.6, 0.4)
        ledger.resolve_market("win", UP, 1.0, 0.0, now=WINDOW_START)
        ledger.resolve_market("lose", UP, 1.0, 0.0, now=WINDOW_START)

        s = ledger.stats()
        assert (s.wins, s.losses, s.resolved_markets, s.active_markets) == (1, 1, 2, 1)
        assert s.win_rate == pytest.approx(0.5)
        assert s.markets_traded == 3
        assert (s.trades_up, s.trades_down, s.total_trades) == (2, 1, 3)
        assert s.unrealized_pnl == pytest.approx(1.0)
        assert s.realized_pnl == pytest.approx(0.0)

    def test_state_restores_ledger(self, ledger: PositionLedger, ledger_cfg: LedgerConfig) -> None:
        buy(ledger, "m", UP, 10, 0.5)
        buy(ledger, "n", DOWN, 10, 0.5)
        ledger.resolve_market("n", DOWN, 0.0, 1.0, now=WINDOW_START)

        restored = PositionLedger.from_state(ledger.state(), ledger_cfg)
        assert restored.available_capital == pytest.approx(ledger.available_capital)
        assert restored.position("m").up.shares == 10
        assert len(restored.resolved_markets()) == 1
        assert buy(restored, "m", UP, 1, 0.5).trade_id == "paper-000003"
