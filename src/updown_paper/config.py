from __future__ import annotations
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError


class ConfigError(ValueError):
    pass


class AppConfig(BaseModel):
    loop_seconds: float = 2.0
    display_every_s: float = 30.0
    snapshot_every_s: float = 60.0
    seed: Optional[int] = None


class DataConfig(BaseModel):
    activity_base: str = "https://data-api.polymarket.com"
    clob_rest_base: str = "https://clob.polymarket.com"
    gamma_base: str = "https://gamma-api.polymarket.com"
    user_addresses: List[str] = Field(default_factory=list)
    activity_limit: int = 200
    discover_updown_15m: bool = True
    discover_assets: List[str] = Field(default_factory=lambda: ["btc", "eth"])


class LedgerConfig(BaseModel):
    starting_capital_usd: float = 10000.0
    max_per_market_usd: float = 500.0
    max_active_markets: int = 4
    max_deployed_fraction: float = 0.8


class BuildConfig(BaseModel):
    per_asset_cap_usd: float = 300.0
    aggressiveness: float = 0.03
    min_position_usd: float = 20.0
    base_ratio: float = 0.5
    ratio_variance: float = 0.05
    ratio_band: float = 0.1
    expiration_window_s: float = 120.0
    momentum_check_s: float = 10.0
    momentum_min_move: float = 0.03
    momentum_scale: float = 5.0
    momentum_sensitivity: float = 0.5
    two_sided_probability: float = 0.6
    share_jitter: float = 0.1
    min_trade_shares: float = 5.0
    target_fill_threshold: float = 0.98
    target_growth: float = 0.10


class ArbitrageConfig(BaseModel):
    clear_threshold: float = 0.95
    min_loser_price: float = 0.01
    max_loser_price: float = 0.05
    max_notional_usd: float = 30.0
    min_available_capital_usd: float = 50.0


class RegistryConfig(BaseModel):
    max_markets: int = 20
    stale_after_s: float = 7 * 24 * 3600.0
    dedup_memory: int = 10000


class StorageConfig(BaseModel):
    events_path: str = "data/events.jsonl"
    trades_csv: str = "data/paper_trades.csv"
    resolutions_csv: str = "data/paper_resolutions.csv"
    watcher_csv: str = "data/watcher_pnl.csv"
    state_path: str = "data/state.json"


class BotConfig(BaseModel):
    app: AppConfig = Field(default_factory=AppConfig)
    data: DataConfig = Field(default_factory=DataConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    arbitrage: ArbitrageConfig = Field(default_factory=ArbitrageConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


# env var -> (section, field, cast)
ENV_OVERRIDES = {
    "PAPER_STARTING_CAPITAL": ("ledger", "starting_capital_usd", float),
    "PAPER_MAX_PER_MARKET": ("ledger", "max_per_market_usd", float),
    "PAPER_MAX_MARKETS": ("ledger", "max_active_markets", int),
    "PAPER_MAX_DEPLOYED": ("ledger", "max_deployed_fraction", float),
    "PAPER_PER_ASSET_CAP": ("build", "per_asset_cap_usd", float),
}


def load_config(path: str) -> dict:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(p.read_text()) or {}


def _apply_env(raw: dict, environ) -> dict:
    out = {k: dict(v) if isinstance(v, dict) else v for k, v in raw.items()}
    for name, (section, field, cast) in ENV_OVERRIDES.items():
        value = environ.get(name)
        if value in (None, ""):
            continue
        try:
            out.setdefault(section, {})[field] = cast(value)
        except ValueError as e:
            raise ConfigError(f"{name}: cannot parse {value!r}") from e
    addresses = environ.get("USER_ADDRESSES")
    if addresses:
        out.setdefault("data", {})["user_addresses"] = [a.strip() for a in addresses.split(",") if a.strip()]
    return out


def validate_config(cfg: BotConfig) -> List[str]:
    errors: List[str] = []
    led = cfg.ledger
    if led.starting_capital_usd <= 0:
        errors.append("ledger.starting_capital_usd must be positive")
    if led.max_per_market_usd <= 0:
        errors.append("ledger.max_per_market_usd must be positive")
    if led.max_per_market_usd > led.starting_capital_usd:
        errors.append("ledger.max_per_market_usd cannot exceed starting capital")
    if led.max_active_markets < 1:
        errors.append("ledger.max_active_markets must be at least 1")
    if not 0 < led.max_deployed_fraction <= 1:
        errors.append("ledger.max_deployed_fraction must be in (0, 1]")

    b = cfg.build
    if not 0 < b.aggressiveness <= 1:
        errors.append("build.aggressiveness must be in (0, 1]")
    if not 0 < b.base_ratio < 1:
        errors.append("build.base_ratio must be in (0, 1)")
    if b.ratio_band < 0 or b.ratio_band >= 0.5:
        errors.append("build.ratio_band must be in [0, 0.5)")
    if b.min_trade_shares <= 0:
        errors.append("build.min_trade_shares must be positive")
    if not 0 <= b.two_sided_probability <= 1:
        errors.append("build.two_sided_probability must be in [0, 1]")
    if b.expiration_window_s <= 0:
        errors.append("build.expiration_window_s must be positive")

    a = cfg.arbitrage
    if not 0.5 < a.clear_threshold < 1:
        errors.append("arbitrage.clear_threshold must be in (0.5, 1)")
    if not 0 <= a.min_loser_price < a.max_loser_price < 1:
        errors.append("arbitrage loser price band must satisfy 0 <= min < max < 1")
    if a.max_notional_usd <= 0:
        errors.append("arbitrage.max_notional_usd must be positive")

    if cfg.registry.max_markets < 1:
        errors.append("registry.max_markets must be at least 1")
    return errors


def build_config(raw: dict | None = None, environ=None) -> BotConfig:
    raw = _apply_env(raw or {}, os.environ if environ is None else environ)
    try:
        cfg = BotConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
    errors = validate_config(cfg)
    if errors:
        raise ConfigError("invalid configuration: " + "; ".join(errors))
    return cfg


def load_bot_config(path: str | None = None, environ=None) -> BotConfig:
    raw = load_config(path) if path else {}
    return build_config(raw, environ=environ)
