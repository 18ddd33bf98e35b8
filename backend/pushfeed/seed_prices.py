"""Seed prices, simulation parameters and event schemas for the simulated feed."""

# Starting prices for well-known symbols; others start at a random price
SEED_PRICES: dict[str, float] = {
    "AAPL": 190.00,
    "GOOGL": 175.00,
    "MSFT": 420.00,
    "AMZN": 185.00,
    "TSLA": 250.00,
    "NVDA": 800.00,
    "META": 500.00,
    "JPM": 195.00,
    "SPY": 510.00,
    "QQQ": 440.00,
}

# Per-symbol GBM parameters
# sigma: annualized volatility
# mu: annualized drift
# beta: loading on the common market factor (0 = independent, 1 = moves with the market)
SYMBOL_PARAMS: dict[str, dict[str, float]] = {
    "AAPL": {"sigma": 0.22, "mu": 0.05, "beta": 0.75},
    "GOOGL": {"sigma": 0.25, "mu": 0.05, "beta": 0.75},
    "MSFT": {"sigma": 0.20, "mu": 0.05, "beta": 0.75},
    "AMZN": {"sigma": 0.28, "mu": 0.05, "beta": 0.70},
    "TSLA": {"sigma": 0.50, "mu": 0.03, "beta": 0.40},
    "NVDA": {"sigma": 0.40, "mu": 0.08, "beta": 0.70},
    "META": {"sigma": 0.30, "mu": 0.05, "beta": 0.70},
    "JPM": {"sigma": 0.18, "mu": 0.04, "beta": 0.55},
    "SPY": {"sigma": 0.15, "mu": 0.06, "beta": 1.00},
    "QQQ": {"sigma": 0.19, "mu": 0.07, "beta": 0.95},
}

DEFAULT_PARAMS: dict[str, float] = {"sigma": 0.25, "mu": 0.05, "beta": 0.50}

# Half-spread as a fraction of price for simulated quotes
HALF_SPREAD = 0.0002

# Field lists announced inline the first time a type is sent on a connection
EVENT_SCHEMAS: dict[str, list[str]] = {
    "Quote": ["eventSymbol", "time", "bidPrice", "bidSize", "askPrice", "askSize"],
    "Trade": ["eventSymbol", "time", "price", "size", "dayVolume"],
    "TimeAndSale": ["eventSymbol", "time", "index", "price", "size", "aggressorSide"],
}

# Which types are delivered on the time-series data channel
TIME_SERIES_TYPES: frozenset[str] = frozenset({"TimeAndSale"})

# Per-symbol history kept for time-series subscriptions with an earlier fromTime
HISTORY_LIMIT = 500
