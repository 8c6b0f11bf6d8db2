"""Activity-statement ingestion and average-cost position ledger."""

__version__ = "0.1.0"
