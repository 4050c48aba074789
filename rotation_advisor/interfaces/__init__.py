"""Protocol interfaces for the rotation advisor's collaborators."""
from .balances import BalanceProvider
from .chain import ChainClient
from .notifier import Notifier
from .opportunities import ArbitrageOpportunityProvider, YieldOpportunityProvider
from .price_oracle import PriceOracle
from .routing import RouteProvider
from .signer import Signer
from .storage import KeyValueStore

__all__ = [
    "ArbitrageOpportunityProvider",
    "BalanceProvider",
    "ChainClient",
    "KeyValueStore",
    "Notifier",
    "PriceOracle",
    "RouteProvider",
    "Signer",
    "YieldOpportunityProvider",
]
