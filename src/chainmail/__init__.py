"""Chain-state reconciliation for on-chain mail."""

__version__ = "0.1.0"
