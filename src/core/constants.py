"""
Core constants and limits.

Defines engine-wide constants and resource limits used by the simulator,
the metrics calculator and the walk-forward optimizer.
"""

# Strategy Limits
MAX_POSITIONS_LIMIT = 100  # Maximum concurrent positions a strategy may request
MIN_INITIAL_CAPITAL = 0.0  # Initial capital must be strictly greater than this
MAX_PERCENT = 100.0  # Upper bound for percentage-based settings

# Rule Evaluation
EQUALITY_TOLERANCE = 0.0001  # Absolute tolerance for the == comparator

# Metrics
TRADING_DAYS_PER_YEAR = 252  # Sharpe annualization factor is sqrt of this
PROFIT_FACTOR_NO_LOSSES = 999.0  # Profit factor when there are winners but no losers

# Walk-Forward Optimization
MAX_PARAMETER_COMBINATIONS = 100  # Grid search cap per training window
DEFAULT_MAX_WORKERS = 1  # Candidate evaluations run sequentially by default
MAX_WORKERS_LIMIT = 32  # Upper bound for the candidate worker pool

# Data Loading
WARMUP_LOOKBACK_FACTOR = 1.5  # Calendar time per bar to cover weekends and holidays
WARMUP_LOOKBACK_PADDING_DAYS = 10  # Extra calendar days fetched ahead of the start date

# Indicator Cache
INDICATOR_CACHE_SIZE = 256  # Maximum distinct indicator series kept per run
