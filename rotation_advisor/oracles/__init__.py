"""USD price oracles."""
from .pyth import PythOracle
from .static import LayeredPriceOracle, StaticPriceOracle

__all__ = ["LayeredPriceOracle", "PythOracle", "StaticPriceOracle"]
