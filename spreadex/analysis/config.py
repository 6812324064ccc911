"""
Pair Analysis Configuration

Defines windows, thresholds and feature toggles for pair analysis.
Every option is independently defaulted; partial dictionaries are merged
over the defaults in from_dict().
"""

from dataclasses import dataclass
import hashlib
import json


@dataclass
class MeanReversionConfig:
    """Rolling hedge ratio and stationarity gate settings"""
    rolling_beta_window: int = 120  # Trailing bars for the OLS hedge ratio
    rolling_beta_min_window: int = 40  # Minimum bars near the start of the series
    adf_critical_value: float = -2.86  # 5% ADF critical value
    min_half_life_bars: float = 2.0
    max_half_life_bars: float = 120.0


@dataclass
class CorrelationVelocityConfig:
    """Rolling correlation dynamics"""
    window: int = 50  # Bars per rolling correlation
    lookback: int = 10  # Bars between velocity samples
    enabled: bool = True


@dataclass
class VolatilitySpreadConfig:
    """Volatility-adjusted spread settings"""
    lookback_period: int = 20  # Bars for leg return volatility
    enabled: bool = True


@dataclass
class ReversionConfig:
    """Historical reversion labelling"""
    lookahead_bars: int = 12  # Future snapshots allowed for a reversion
    entry_z_score: float = 1.5  # Minimum |z| to count as a signal
    exit_z_score: float = 0.6  # |z| at or below this counts as reverted
    min_sample_size: int = 8  # Samples needed before a bucket is trusted


@dataclass
class AnalysisConfig:
    """
    Master configuration for pair analysis.

    Sub-configs left as None are filled with their defaults.
    """

    mean_reversion: MeanReversionConfig = None
    correlation_velocity: CorrelationVelocityConfig = None
    volatility_spread: VolatilitySpreadConfig = None
    reversion: ReversionConfig = None

    config_version: str = "1.0.0"

    def __post_init__(self):
        """Initialize sub-configs with defaults"""
        if self.mean_reversion is None:
            self.mean_reversion = MeanReversionConfig()
        if self.correlation_velocity is None:
            self.correlation_velocity = CorrelationVelocityConfig()
        if self.volatility_spread is None:
            self.volatility_spread = VolatilitySpreadConfig()
        if self.reversion is None:
            self.reversion = ReversionConfig()

    def validate(self) -> None:
        """
        Reject structurally impossible settings.

        Raises:
            ValueError: if a window is non-positive or the half-life band is inverted
        """
        mr = self.mean_reversion
        if mr.rolling_beta_window < 3 or mr.rolling_beta_min_window < 3:
            raise ValueError(
                f"Rolling beta windows must be >= 3, got "
                f"{mr.rolling_beta_window}/{mr.rolling_beta_min_window}"
            )
        if mr.min_half_life_bars > mr.max_half_life_bars:
            raise ValueError(
                f"min_half_life_bars ({mr.min_half_life_bars}) exceeds "
                f"max_half_life_bars ({mr.max_half_life_bars})"
            )
        if self.correlation_velocity.window < 2 or self.correlation_velocity.lookback < 1:
            raise ValueError("Correlation velocity window must be >= 2 and lookback >= 1")
        if self.volatility_spread.lookback_period < 2:
            raise ValueError("Volatility lookback period must be >= 2")
        if self.reversion.lookahead_bars < 1 or self.reversion.min_sample_size < 1:
            raise ValueError("Reversion lookahead and sample size must be >= 1")

    def to_dict(self) -> dict:
        """Convert config to dictionary"""
        return {
            'config_version': self.config_version,
            'mean_reversion': {
                'rolling_beta_window': self.mean_reversion.rolling_beta_window,
                'rolling_beta_min_window': self.mean_reversion.rolling_beta_min_window,
                'adf_critical_value': self.mean_reversion.adf_critical_value,
                'min_half_life_bars': self.mean_reversion.min_half_life_bars,
                'max_half_life_bars': self.mean_reversion.max_half_life_bars,
            },
            'correlation_velocity': {
                'window': self.correlation_velocity.window,
                'lookback': self.correlation_velocity.lookback,
                'enabled': self.correlation_velocity.enabled,
            },
            'volatility_spread': {
                'lookback_period': self.volatility_spread.lookback_period,
                'enabled': self.volatility_spread.enabled,
            },
            'reversion': {
                'lookahead_bars': self.reversion.lookahead_bars,
                'entry_z_score': self.reversion.entry_z_score,
                'exit_z_score': self.reversion.exit_z_score,
                'min_sample_size': self.reversion.min_sample_size,
            },
        }

    def get_config_hash(self) -> str:
        """
        Generate deterministic hash of configuration.

        Returns:
            Hash string for versioning
        """
        config_str = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, config_dict: dict) -> 'AnalysisConfig':
        """Create config from a (possibly partial) dictionary"""
        mr_dict = config_dict.get('mean_reversion', {})
        cv_dict = config_dict.get('correlation_velocity', {})
        vs_dict = config_dict.get('volatility_spread', {})
        rev_dict = config_dict.get('reversion', {})

        return cls(
            config_version=config_dict.get('config_version', '1.0.0'),
            mean_reversion=MeanReversionConfig(**mr_dict) if mr_dict else None,
            correlation_velocity=CorrelationVelocityConfig(**cv_dict) if cv_dict else None,
            volatility_spread=VolatilitySpreadConfig(**vs_dict) if vs_dict else None,
            reversion=ReversionConfig(**rev_dict) if rev_dict else None,
        )
