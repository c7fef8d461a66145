from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


UP = "UP"
DOWN = "DOWN"
SIDES = (UP, DOWN)


class Activity(BaseModel):
    transaction_hash: str = ""
    timestamp: float
    condition_id: str = ""
    slug: str = ""
    event_slug: str = ""
    title: str = ""
    outcome_index: Optional[int] = None
    outcome: str = ""
    asset: str = ""
    size: float = 0.0
    price: float = 0.0
    usdc_size: float = 0.0
    side: str = "BUY"  # BUY / SELL
    end_date: Optional[float] = None


class MarketRecord(BaseModel):
    key: str
    name: str = ""
    slug: str = ""
    category: str = ""  # rotating type, e.g. BTC-UpDown-15
    condition_id: str = ""
    asset_up: str = ""
    asset_down: str = ""
    shares_up: float = 0.0
    shares_down: float = 0.0
    cost_up: float = 0.0
    cost_down: float = 0.0
    trades_up: int = 0
    trades_down: int = 0
    price_up: Optional[float] = None
    price_down: Optional[float] = None
    price_updated_at: Optional[float] = None
    end_ts: Optional[float] = None
    first_seen: float
    last_update: float

    @property
    def total_invested(self) -> float:
        return self.cost_up + self.cost_down


class IngestResult(BaseModel):
    key: str
    created: bool = False
    removed: List[str] = Field(default_factory=list)


class PaperPosition(BaseModel):
    side: str  # UP / DOWN
    shares: float = 0.0
    total_cost: float = 0.0
    average_price: float = 0.0
    trade_count: int = 0
    first_trade_at: Optional[float] = None
    last_trade_at: Optional[float] = None


class PaperMarketPosition(BaseModel):
    key: str
    name: str = ""
    slug: str = ""
    condition_id: str = ""
    category: str = ""
    end_ts: Optional[float] = None
    up: PaperPosition = Field(default_factory=lambda: PaperPosition(side=UP))
    down: PaperPosition = Field(default_factory=lambda: PaperPosition(side=DOWN))
    price_up: Optional[float] = None
    price_down: Optional[float] = None
    opened_at: float

    def leg(self, side: str) -> PaperPosition:
        return self.up if side == UP else self.down

    @property
    def total_invested(self) -> float:
        return self.up.total_cost + self.down.total_cost

    @property
    def current_value(self) -> float:
        value = 0.0
        if self.price_up is not None:
            value += self.up.shares * self.price_up
        if self.price_down is not None:
            value += self.down.shares * self.price_down
        return value

    @property
    def unrealized_pnl(self) -> float:
        return self.current_value - self.total_invested


class TradeIntent(BaseModel):
    market_key: str
    side: str
    shares: float
    price: float
    kind: str = "build"  # build / arbitrage
    reason: str = ""
    market_name: str = ""
    slug: str = ""
    condition_id: str = ""
    category: str = ""
    end_ts: Optional[float] = None

    @property
    def notional(self) -> float:
        return self.shares * self.price


class PaperTrade(BaseModel):
    trade_id: str
    timestamp: float
    market_key: str
    market_name: str = ""
    slug: str = ""
    condition_id: str = ""
    side: str
    shares: float
    price: float
    total_cost: float
    kind: str = "build"
    reason: str = ""
    average_price: float = 0.0  # running average of the side after this fill


class ResolvedMarket(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    name: str = ""
    slug: str = ""
    condition_id: str = ""
    category: str = ""
    invested_up: float
    invested_down: float
    total_invested: float
    shares_up: float
    shares_down: float
    trades_up: int
    trades_down: int
    final_price_up: Optional[float] = None
    final_price_down: Optional[float] = None
    winner: str
    payout: float
    realized_pnl: float
    realized_pnl_pct: float
    opened_at: float
    resolved_at: float
    reason: str = ""


class WatcherResult(BaseModel):
    # settled value of the watched wallets' aggregates on one market
    key: str
    name: str = ""
    condition_id: str = ""
    category: str = ""
    end_ts: Optional[float] = None
    shares_up: float
    shares_down: float
    cost_up: float
    cost_down: float
    trades_up: int
    trades_down: int
    final_price_up: Optional[float] = None
    final_price_down: Optional[float] = None
    winner: str
    payout: float
    pnl: float
    pnl_pct: float
    settled_at: float


class WatcherStats(BaseModel):
    markets: int = 0
    total_invested: float = 0.0
    total_pnl: float = 0.0
    pnl_pct: float = 0.0


class TradeCheck(BaseModel):
    approved: bool
    reason: str


class LedgerStats(BaseModel):
    starting_capital: float
    available_capital: float
    markets_traded: int
    active_markets: int
    resolved_markets: int
    open_invested: float
    open_value: float
    realized_pnl: float
    unrealized_pnl: float
    wins: int
    losses: int
    win_rate: float
    trades_up: int
    trades_down: int
    total_trades: int
    avg_pnl_per_market: float


class LedgerState(BaseModel):
    starting_capital: float
    available_capital: float
    realized_pnl: float = 0.0
    trade_seq: int = 0
    positions: List[PaperMarketPosition] = Field(default_factory=list)
    resolved: List[ResolvedMarket] = Field(default_factory=list)
    trades: List[PaperTrade] = Field(default_factory=list)


class PositionBuildState(BaseModel):
    target_up_usd: float
    target_down_usd: float
    up_ratio: float
    invested_up: float = 0.0
    invested_down: float = 0.0
    shares_up: float = 0.0
    shares_down: float = 0.0
    avg_up: float = 0.0
    avg_down: float = 0.0
    momentum_bias: float = 0.0
    start_price_up: float
    start_price_down: float
    started_at: float
    next_trade_at: float
    next_momentum_check_at: float
    trade_count: int = 0
    growth_count: int = 0

    @property
    def total_target(self) -> float:
        return self.target_up_usd + self.target_down_usd


class MarketSlot(BaseModel):
    key: str
    phase: str = "discovered"  # discovered / building / arbitrage / skipped / settled
    build: Optional[PositionBuildState] = None
    last_price_up: Optional[float] = None
    last_price_down: Optional[float] = None
    end_ts: Optional[float] = None
    arbitrage_key: Optional[str] = None
    settled: Optional[ResolvedMarket] = None
    skip_reason: str = ""
