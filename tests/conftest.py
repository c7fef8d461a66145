from __future__ import annotations

import pytest

from updown_paper.config import ArbitrageConfig, BuildConfig, LedgerConfig
from updown_paper.engine.registry import MarketRegistry
from updown_paper.engine.sizing import RandomSource
from updown_paper.models import Activity, TradeIntent
from updown_paper.sim.paper import PositionLedger

# 2023-11-14 22:15:00 UTC == 17:15 ET, start of a 15-minute window
WINDOW_START = 1_700_000_100
WINDOW_END = WINDOW_START + 900
BTC_15M_TITLE = "Bitcoin Up or Down - November 14, 5:15PM-5:30PM ET"
BTC_15M_SLUG = f"btc-updown-15m-{WINDOW_START}"


class ScriptedRandom(RandomSource):
    """Deterministic draws: fixed random(), midpoint uniform(), fixed table index."""

    def __init__(self, value: float = 0.0, index: int = 1) -> None:
        super().__init__(seed=0)
        self.value = value
        self.index = index

    def random(self) -> float:
        return self.value

    def uniform(self, a: float, b: float) -> float:
        return (a + b) / 2.0

    def weighted(self, items, weights):
        items = list(items)
        return items[min(self.index, len(items) - 1)]


def make_activity(**overrides) -> Activity:
    data = dict(
        transaction_hash="0xtx1",
        timestamp=WINDOW_START + 30,
        condition_id="0xaaaabbbbccccdddd",
        slug=BTC_15M_SLUG,
        title=BTC_15M_TITLE,
        outcome_index=0,
        outcome="Up",
        asset="tok-up",
        size=10.0,
        price=0.5,
        usdc_size=5.0,
        side="BUY",
    )
    data.update(overrides)
    return Activity(**data)


def buy(ledger: PositionLedger, key: str, side: str, shares: float, price: float, now: float = WINDOW_START, **kw):
    return ledger.record_trade(TradeIntent(market_key=key, side=side, shares=shares, price=price, **kw), now)


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def ledger_cfg() -> LedgerConfig:
    return LedgerConfig(starting_capital_usd=10000, max_per_market_usd=500, max_active_markets=4, max_deployed_fraction=0.8)


@pytest.fixture
def ledger(ledger_cfg, events) -> PositionLedger:
    return PositionLedger(ledger_cfg, on_event=events.append)


@pytest.fixture
def build_cfg() -> BuildConfig:
    return BuildConfig()


@pytest.fixture
def arb_cfg() -> ArbitrageConfig:
    return ArbitrageConfig()


@pytest.fixture
def registry() -> MarketRegistry:
    return MarketRegistry(max_markets=20)


@pytest.fixture
def rnd() -> ScriptedRandom:
    return ScriptedRandom()
