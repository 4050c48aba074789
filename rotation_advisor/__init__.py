"""Cross-chain capital-rotation and arbitrage advisor."""

__version__ = "0.1.0"
