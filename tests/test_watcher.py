from __future__ import annotations

import pytest

from conftest import WINDOW_END, WINDOW_START
from updown_paper.engine.watcher import WatcherTally, value_record
from updown_paper.models import DOWN, UP, MarketRecord


def _record(**kw) -> MarketRecord:
    data = dict(
        key="CID-0xaaaabbbb",
        name="Bitcoin Up or Down - November 14, 5:15PM-5:30PM ET",
        condition_id="0xaaaabbbbccccdddd",
        shares_up=100.0,
        shares_down=50.0,
        cost_up=55.0,
        cost_down=20.0,
        trades_up=3,
        trades_down=2,
        price_up=0.97,
        price_down=0.03,
        end_ts=WINDOW_END,
        first_seen=WINDOW_START,
        last_update=WINDOW_START + 600,
    )
    data.update(kw)
    return MarketRecord(**data)


class TestValueRecord:
    def test_winning_side_pays_a_dollar(self) -> None:
        result = value_record(_record(), now=WINDOW_END)

        assert result.winner == UP
        assert result.payout == pytest.approx(100.0)
        assert result.pnl == pytest.approx(25.0)
        assert result.pnl_pct == pytest.approx(25.0 / 75.0 * 100)
        assert (result.trades_up, result.trades_down) == (3, 2)

    def test_losing_bet(self) -> None:
        result = value_record(_record(price_up=0.2, price_down=0.8), now=WINDOW_END)

        assert result.winner == DOWN
        assert result.pnl == pytest.approx(50.0 - 75.0)

    def test_tie_settles_down(self) -> None:
        assert value_record(_record(price_up=None, price_down=None), now=WINDOW_END).winner == DOWN


class TestWatcherTally:
    def test_each_market_counted_once(self) -> None:
        tally = WatcherTally()
        assert tally.record(_record(), now=WINDOW_END) is not None
        assert tally.record(_record(), now=WINDOW_END + 5) is None

        stats = tally.stats()
        assert stats.markets == 1
        assert stats.total_invested == pytest.approx(75.0)
        assert stats.total_pnl == pytest.approx(25.0)

    def test_text_keyed_windows_counted_separately(self) -> None:
        tally = WatcherTally()
        tally.record(_record(key="BTC-UpDown-15", condition_id=""), now=WINDOW_END)
        tally.record(_record(key="BTC-UpDown-15", condition_id="", end_ts=WINDOW_END + 900), now=WINDOW_END + 900)
        assert tally.stats().markets == 2

    def test_records_without_shares_skipped(self) -> None:
        tally = WatcherTally()
        assert tally.record(_record(shares_up=0.0, shares_down=0.0), now=WINDOW_END) is None
        assert tally.stats().markets == 0
