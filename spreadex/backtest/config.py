"""
Backtest Configuration

Entry/exit thresholds for the pair-spread and momentum/RSI strategies and
window sizes for walk-forward optimization. Configs are frozen; partial
overrides go through merged() or from_dict(), each missing option keeping
its default.
"""

from dataclasses import asdict, dataclass, fields, replace
from typing import Optional
import hashlib
import json


def _known_overrides(config_cls, overrides: dict) -> dict:
    """Drop None values and reject options the config does not recognize"""
    names = {f.name for f in fields(config_cls)}
    unknown = set(overrides) - names
    if unknown:
        raise ValueError(f"Unrecognized {config_cls.__name__} options: {sorted(unknown)}")
    return {k: v for k, v in overrides.items() if v is not None}


class _HashableConfig:
    """to_dict / get_config_hash shared by the backtest configs"""

    def to_dict(self) -> dict:
        """Convert config to dictionary"""
        return asdict(self)

    def get_config_hash(self) -> str:
        """
        Generate deterministic hash of configuration.

        Returns:
            Hash string for versioning
        """
        config_str = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    def merged(self, **overrides):
        """Copy with every non-None override applied"""
        return replace(self, **_known_overrides(type(self), overrides))

    @classmethod
    def from_dict(cls, config_dict: Optional[dict] = None):
        """Create config from a (possibly partial) dictionary"""
        return cls(**_known_overrides(cls, config_dict or {}))


@dataclass(frozen=True)
class BacktestConfig(_HashableConfig):
    """Pair-spread strategy thresholds"""
    entry_spread_threshold: float = 3.0  # Enter when |rolling z| exceeds this
    min_correlation: float = 0.7  # Overall return correlation required to trade
    take_profit_percent: float = 0.5  # Combined P&L % closing a winner
    stop_loss_percent: float = 0.5  # Combined P&L % closing a loser

    def validate(self) -> None:
        """
        Reject structurally impossible settings.

        Raises:
            ValueError: if a threshold is non-positive or the correlation is outside [-1, 1]
        """
        if self.entry_spread_threshold <= 0:
            raise ValueError(f"entry_spread_threshold must be > 0, got {self.entry_spread_threshold}")
        if not -1.0 <= self.min_correlation <= 1.0:
            raise ValueError(f"min_correlation must be within [-1, 1], got {self.min_correlation}")
        if self.take_profit_percent <= 0 or self.stop_loss_percent <= 0:
            raise ValueError(
                f"take_profit_percent and stop_loss_percent must be > 0, got "
                f"{self.take_profit_percent}/{self.stop_loss_percent}"
            )


@dataclass(frozen=True)
class MomentumBacktestConfig(_HashableConfig):
    """Momentum/RSI strategy thresholds"""
    rsi_period: int = 14
    rsi_threshold: float = 30.0  # Enter when RSI crosses below this
    take_profit_percent: float = 3.0
    stop_loss_percent: float = 4.0
    max_hold_bars: int = 10
    cooldown_bars: int = 2  # Bars after an exit before the next entry

    def validate(self) -> None:
        """
        Reject structurally impossible settings.

        Raises:
            ValueError: on non-positive periods, thresholds or holding limits
        """
        if self.rsi_period < 1:
            raise ValueError(f"rsi_period must be >= 1, got {self.rsi_period}")
        if not 0 < self.rsi_threshold < 100:
            raise ValueError(f"rsi_threshold must be within (0, 100), got {self.rsi_threshold}")
        if self.take_profit_percent <= 0:
            raise ValueError(f"take_profit_percent must be > 0, got {self.take_profit_percent}")
        if not 0 < self.stop_loss_percent < 100:
            raise ValueError(f"stop_loss_percent must be within (0, 100), got {self.stop_loss_percent}")
        if self.max_hold_bars < 1 or self.cooldown_bars < 0:
            raise ValueError(
                f"max_hold_bars must be >= 1 and cooldown_bars >= 0, got "
                f"{self.max_hold_bars}/{self.cooldown_bars}"
            )


@dataclass(frozen=True)
class WalkForwardConfig(_HashableConfig):
    """Rolling train/test window sizes"""
    train_window: int = 500
    test_window: int = 100
    min_window_bars: int = 120  # Smaller windows fall back to the defaults

    def validate(self) -> None:
        if self.min_window_bars < 1:
            raise ValueError(f"min_window_bars must be >= 1, got {self.min_window_bars}")


DEFAULT_BACKTEST_CONFIG = BacktestConfig()
DEFAULT_MOMENTUM_BACKTEST_CONFIG = MomentumBacktestConfig()
