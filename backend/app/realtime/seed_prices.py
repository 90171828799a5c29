"""Seed prices and per-symbol parameters for the offline simulator."""

# Crypto markets (quote currency KRW, Upbit naming)
CRYPTO_SEEDS: dict[str, float] = {
    "KRW-BTC": 95_000_000.0,
    "KRW-ETH": 4_200_000.0,
    "KRW-XRP": 850.0,
    "KRW-SOL": 210_000.0,
    "KRW-DOGE": 230.0,
    "KRW-ADA": 650.0,
}

# Index constituents shown on the equity-index channel
EQUITY_SEEDS: dict[str, float] = {
    "AAPL": 190.00,
    "MSFT": 420.00,
    "NVDA": 800.00,
    "AMZN": 185.00,
    "GOOGL": 175.00,
    "META": 500.00,
    "JPM": 195.00,
    "V": 280.00,
}

# Small/mid caps the movers feed ranks; volatile on purpose
MOVER_SEEDS: dict[str, float] = {
    "PLTR": 24.00,
    "SOFI": 8.50,
    "RIVN": 12.00,
    "LCID": 3.20,
    "MARA": 19.00,
    "RIOT": 11.00,
    "HOOD": 18.00,
    "AFRM": 35.00,
    "UPST": 28.00,
    "CHWY": 22.00,
    "SNAP": 11.50,
    "NIO": 5.10,
}

COMPANY_NAMES: dict[str, str] = {
    "AAPL": "Apple Inc.",
    "MSFT": "Microsoft Corporation",
    "NVDA": "NVIDIA Corporation",
    "AMZN": "Amazon.com, Inc.",
    "GOOGL": "Alphabet Inc.",
    "META": "Meta Platforms, Inc.",
    "JPM": "JPMorgan Chase & Co.",
    "V": "Visa Inc.",
    "PLTR": "Palantir Technologies Inc.",
    "SOFI": "SoFi Technologies, Inc.",
    "RIVN": "Rivian Automotive, Inc.",
}

# Annualized volatility per channel (higher = more movement per tick)
CHANNEL_SIGMA: dict[str, float] = {
    "crypto": 0.80,
    "equity-index": 0.25,
    "movers": 1.20,
}
DEFAULT_MU = 0.05

# Movers: how many entries each category publishes
MOVERS_PER_CATEGORY = 4
