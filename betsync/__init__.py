"""betsync: keeps a local view of betting accounts, batches and bets in sync."""

__version__ = "0.1.0"

__all__ = ["__version__"]
