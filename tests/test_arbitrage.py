from __future__ import annotations

import pytest

from conftest import WINDOW_END, WINDOW_START, buy
from updown_paper.config import ArbitrageConfig, LedgerConfig
from updown_paper.engine.arbitrage import arbitrage_key, execute_arbitrage_trade, find_cheap_loser
from updown_paper.models import DOWN, UP, MarketRecord
from updown_paper.sim.paper import PositionLedger

KEY = "CID-0xaaaabbbb"


def _record(price_up, price_down) -> MarketRecord:
    return MarketRecord(
        key=KEY,
        name="Bitcoin Up or Down",
        asset_up="tok-up",
        asset_down="tok-down",
        price_up=price_up,
        price_down=price_down,
        end_ts=WINDOW_END,
        first_seen=WINDOW_START,
        last_update=WINDOW_START,
    )


class TestFindCheapLoser:
    def test_clear_up(self, arb_cfg: ArbitrageConfig) -> None:
        assert find_cheap_loser(0.97, 0.03, arb_cfg) == (DOWN, 0.03)

    def test_clear_down(self, arb_cfg: ArbitrageConfig) -> None:
        assert find_cheap_loser(0.04, 0.96, arb_cfg) == (UP, 0.04)

    @pytest.mark.parametrize("up, down", [(0.6, 0.4), (0.97, 0.01), (0.97, 0.06), (None, 0.03), (0.5, 0.5)])
    def test_no_opportunity(self, arb_cfg: ArbitrageConfig, up, down) -> None:
        assert find_cheap_loser(up, down, arb_cfg) is None


class TestExecute:
    def test_buys_thirty_dollars_of_the_loser(self, ledger: PositionLedger, arb_cfg: ArbitrageConfig) -> None:
        trade = execute_arbitrage_trade(_record(0.97, 0.03), ledger, arb_cfg, 5, now=WINDOW_END - 90)

        assert trade.side == DOWN
        assert trade.kind == "arbitrage"
        assert trade.total_cost == pytest.approx(30.0)
        assert trade.shares == pytest.approx(1000.0)

        res = ledger.resolve_market(KEY, UP, 0.99, 0.01, now=WINDOW_END)
        assert res.realized_pnl == pytest.approx(-30.0)

    def test_arbitrage_adds_to_build_position(self, ledger: PositionLedger, arb_cfg: ArbitrageConfig) -> None:
        buy(ledger, KEY, UP, 300, 0.5)
        buy(ledger, KEY, DOWN, 300, 0.5)
        execute_arbitrage_trade(_record(0.03, 0.97), ledger, arb_cfg, 5, now=WINDOW_END - 60)

        res = ledger.resolve_market(KEY, DOWN, 0.01, 0.99, now=WINDOW_END)
        # build breaks even, arbitrage UP shares expire worthless
        assert res.payout == pytest.approx(300.0)
        assert res.realized_pnl == pytest.approx(-30.0)

    def test_ambiguous_prices_do_nothing(self, ledger: PositionLedger, arb_cfg: ArbitrageConfig) -> None:
        assert execute_arbitrage_trade(_record(0.6, 0.4), ledger, arb_cfg, 5, now=WINDOW_END - 60) is None
        assert ledger.available_capital == ledger.starting_capital
        assert ledger.trades() == []

    def test_capital_floor(self, arb_cfg: ArbitrageConfig) -> None:
        ledger = PositionLedger(LedgerConfig(starting_capital_usd=60, max_per_market_usd=60))
        trade = execute_arbitrage_trade(_record(0.97, 0.03), ledger, arb_cfg, 5, now=WINDOW_END - 60)
        assert trade.total_cost == pytest.approx(10.0)

        poor = PositionLedger(LedgerConfig(starting_capital_usd=40, max_per_market_usd=40))
        assert execute_arbitrage_trade(_record(0.97, 0.03), poor, arb_cfg, 5, now=WINDOW_END - 60) is None

    def test_minimum_shares(self, ledger: PositionLedger) -> None:
        cfg = ArbitrageConfig(max_notional_usd=0.1)
        assert execute_arbitrage_trade(_record(0.97, 0.05), ledger, cfg, 5, now=WINDOW_END - 60) is None


def test_arbitrage_key_rounds_to_minute() -> None:
    assert arbitrage_key(KEY, WINDOW_END) == arbitrage_key(KEY, WINDOW_END + 20)
    assert arbitrage_key(KEY, WINDOW_END) != arbitrage_key(KEY, WINDOW_END + 900)
