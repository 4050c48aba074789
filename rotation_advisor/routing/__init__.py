"""Route aggregators."""
from .lifi import LifiClient

__all__ = ["LifiClient"]
