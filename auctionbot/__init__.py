"""Live charity auction ledger and event distribution."""

__version__ = "0.1.0"
