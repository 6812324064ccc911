"""
Output Schemas for Backtests

Trades, summaries and results for the pair-spread and momentum/RSI
strategies plus walk-forward optimizer records.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping, Optional, Tuple
import math

from .config import BacktestConfig, DEFAULT_BACKTEST_CONFIG, MomentumBacktestConfig


class TradeDirection(str, Enum):
    """Pair trade direction, named after the primary leg"""
    LONG_PRIMARY = "long_primary"    # Spread low: long primary, short secondary
    SHORT_PRIMARY = "short_primary"  # Spread high: short primary, long secondary


class ExitReason(str, Enum):
    """Why a position was closed"""
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    MAX_HOLD = "max_hold"
    END_OF_DATA = "end_of_data"


class StrategyMode(str, Enum):
    """Backtest strategy discriminator"""
    PAIR_SPREAD = "pair_spread"
    MOMENTUM_RSI = "momentum_rsi"


class OptimizationConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========================================
# PAIR-SPREAD BACKTEST
# ========================================

@dataclass(frozen=True)
class LegPrices:
    primary: float
    secondary: float

    def to_dict(self) -> dict:
        return {'primary': float(self.primary), 'secondary': float(self.secondary)}


@dataclass(frozen=True)
class Trade:
    """One closed pair trade; indices refer to the aligned series"""
    entry_index: int
    exit_index: int
    entry_spread: float  # Rolling z-score at entry
    exit_spread: float
    entry_correlation: float
    entry_prices: LegPrices
    exit_prices: LegPrices
    direction: TradeDirection
    profit_percent: float  # Average of the two legs, in percent
    exit_reason: ExitReason
    duration_bars: int

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'entry_index': self.entry_index,
            'exit_index': self.exit_index,
            'entry_spread': float(self.entry_spread),
            'exit_spread': float(self.exit_spread),
            'entry_correlation': float(self.entry_correlation),
            'entry_prices': self.entry_prices.to_dict(),
            'exit_prices': self.exit_prices.to_dict(),
            'direction': self.direction.value,
            'profit_percent': float(self.profit_percent),
            'exit_reason': self.exit_reason.value,
            'duration_bars': self.duration_bars,
        }


@dataclass(frozen=True)
class BacktestSummary:
    """Statistics derived purely from a trade list"""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0  # Percent
    total_profit_percent: float = 0.0
    average_profit_percent: float = 0.0
    max_drawdown_percent: float = 0.0
    profit_factor: float = 0.0  # inf with no losses and some profit
    average_duration_bars: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'total_trades': self.total_trades,
            'winning_trades': self.winning_trades,
            'losing_trades': self.losing_trades,
            'win_rate': float(self.win_rate),
            'total_profit_percent': float(self.total_profit_percent),
            'average_profit_percent': float(self.average_profit_percent),
            'max_drawdown_percent': float(self.max_drawdown_percent),
            'profit_factor': float(self.profit_factor),
            'average_duration_bars': float(self.average_duration_bars),
            'largest_win': float(self.largest_win),
            'largest_loss': float(self.largest_loss),
        }


@dataclass(frozen=True)
class BacktestResult:
    """
    Pair-spread backtest for one (primary, candidate) pair.

    equity_curve always starts at 0 and has one point per closed trade
    after that.
    """
    symbol: str
    primary_symbol: str
    config: BacktestConfig = DEFAULT_BACKTEST_CONFIG
    trades: Tuple[Trade, ...] = ()
    summary: BacktestSummary = field(default_factory=BacktestSummary)
    equity_curve: Tuple[float, ...] = (0.0,)
    timestamp: datetime = field(default_factory=_utc_now)

    @property
    def mode(self) -> StrategyMode:
        return StrategyMode.PAIR_SPREAD

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'mode': self.mode.value,
            'symbol': self.symbol,
            'primary_symbol': self.primary_symbol,
            'config': self.config.to_dict(),
            'trades': [t.to_dict() for t in self.trades],
            'summary': self.summary.to_dict(),
            'equity_curve': [float(v) for v in self.equity_curve],
            'timestamp': self.timestamp.isoformat(),
        }


# ========================================
# MOMENTUM / RSI SCANNER BACKTEST
# ========================================

def _parse_number(value) -> float:
    """Numeric or numeric-string field, 0 when unparseable or non-finite"""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


@dataclass(frozen=True)
class Candle:
    """OHLCV bar with numeric fields"""
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def from_raw(cls, raw: Mapping) -> 'Candle':
        """
        Parse an exchange kline record once at the boundary.

        Accepts camelCase (openTime) or snake_case (open_time) keys and
        numeric-string price fields.
        """
        open_time = raw.get('open_time', raw.get('openTime', 0))
        return cls(
            open_time=int(_parse_number(open_time)),
            open=_parse_number(raw.get('open')),
            high=_parse_number(raw.get('high')),
            low=_parse_number(raw.get('low')),
            close=_parse_number(raw.get('close')),
            volume=_parse_number(raw.get('volume')),
        )


@dataclass(frozen=True)
class ScannerTrade:
    """One closed long trade of the momentum/RSI strategy"""
    symbol: str
    entry_time: int
    exit_time: int
    entry_price: float
    exit_price: float
    hold_bars: int
    exit_reason: ExitReason
    pnl_percent: float

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'symbol': self.symbol,
            'entry_time': self.entry_time,
            'exit_time': self.exit_time,
            'entry_price': float(self.entry_price),
            'exit_price': float(self.exit_price),
            'hold_bars': self.hold_bars,
            'exit_reason': self.exit_reason.value,
            'pnl_percent': float(self.pnl_percent),
        }


@dataclass(frozen=True)
class ScannerStats:
    """Trade statistics for one symbol or an aggregate universe"""
    total_trades: int = 0
    winners: int = 0
    losers: int = 0
    win_rate: float = 0.0
    avg_hold_bars: float = 0.0
    avg_pnl_percent: float = 0.0
    total_pnl_percent: float = 0.0
    gross_profit_percent: float = 0.0
    gross_loss_percent: float = 0.0
    profit_factor: float = 0.0
    expectancy_percent: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'total_trades': self.total_trades,
            'winners': self.winners,
            'losers': self.losers,
            'win_rate': float(self.win_rate),
            'avg_hold_bars': float(self.avg_hold_bars),
            'avg_pnl_percent': float(self.avg_pnl_percent),
            'total_pnl_percent': float(self.total_pnl_percent),
            'gross_profit_percent': float(self.gross_profit_percent),
            'gross_loss_percent': float(self.gross_loss_percent),
            'profit_factor': float(self.profit_factor),
            'expectancy_percent': float(self.expectancy_percent),
        }


@dataclass(frozen=True)
class ScannerBacktestResult:
    """Momentum/RSI backtest for one symbol"""
    symbol: str
    config: MomentumBacktestConfig = field(default_factory=MomentumBacktestConfig)
    trades: Tuple[ScannerTrade, ...] = ()
    stats: ScannerStats = field(default_factory=ScannerStats)

    @property
    def mode(self) -> StrategyMode:
        return StrategyMode.MOMENTUM_RSI

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'mode': self.mode.value,
            'symbol': self.symbol,
            'config': self.config.to_dict(),
            'trades': [t.to_dict() for t in self.trades],
            'stats': self.stats.to_dict(),
        }


@dataclass(frozen=True)
class UniverseBacktestResult:
    """Scanner backtest over a universe of symbols"""
    results: Tuple[ScannerBacktestResult, ...] = ()
    aggregate: ScannerStats = field(default_factory=ScannerStats)

    def to_dict(self) -> dict:
        return {
            'results': [r.to_dict() for r in self.results],
            'aggregate': self.aggregate.to_dict(),
        }


# ========================================
# WALK-FORWARD OPTIMIZATION
# ========================================

@dataclass(frozen=True)
class PricePoint:
    """One tail-aligned bar of both legs"""
    primary_close: float
    secondary_close: float


@dataclass(frozen=True)
class WindowResult:
    """One train/test window of a walk-forward run (inclusive bounds)"""
    window_index: int
    train_start: int
    train_end: int
    test_start: int
    test_end: int
    selected_config: BacktestConfig
    train_score: float
    test_score: float
    test_summary: BacktestSummary
    baseline_profit_percent: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'window_index': self.window_index,
            'train_start': self.train_start,
            'train_end': self.train_end,
            'test_start': self.test_start,
            'test_end': self.test_end,
            'selected_config': self.selected_config.to_dict(),
            'train_score': float(self.train_score),
            'test_score': float(self.test_score),
            'test_summary': self.test_summary.to_dict(),
            'baseline_profit_percent': float(self.baseline_profit_percent),
        }


@dataclass(frozen=True)
class OptimizedParams:
    """Walk-forward winner with out-of-sample evidence"""
    config: BacktestConfig
    confidence: OptimizationConfidence
    windows_evaluated: int
    train_window: int
    test_window: int
    forward_score: float = 0.0
    walk_forward_profit_percent: float = 0.0
    walk_forward_win_rate: float = 0.0
    walk_forward_trades: int = 0
    baseline_profit_percent: float = 0.0
    improvement_percent: float = 0.0
    window_results: Tuple[WindowResult, ...] = ()
    selection_count: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'config': self.config.to_dict(),
            'confidence': self.confidence.value,
            'windows_evaluated': self.windows_evaluated,
            'train_window': self.train_window,
            'test_window': self.test_window,
            'forward_score': float(self.forward_score),
            'walk_forward_profit_percent': float(self.walk_forward_profit_percent),
            'walk_forward_win_rate': float(self.walk_forward_win_rate),
            'walk_forward_trades': self.walk_forward_trades,
            'baseline_profit_percent': float(self.baseline_profit_percent),
            'improvement_percent': float(self.improvement_percent),
            'selection_count': self.selection_count,
            'window_results': [w.to_dict() for w in self.window_results],
        }
