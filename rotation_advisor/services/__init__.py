"""Service modules"""
from .executor import Executor
from .history import HistoryStore
from .planner import TokenBook, build_arbitrage_plans, build_rotation_plans, rank_plans
from .position_scanner import PositionScanner
from .scheduler import RotationScheduler
from .strategies import ArbitrageStrategy, ScanResult, YieldRotationStrategy

__all__ = [
    "ArbitrageStrategy",
    "Executor",
    "HistoryStore",
    "PositionScanner",
    "RotationScheduler",
    "ScanResult",
    "TokenBook",
    "YieldRotationStrategy",
    "build_arbitrage_plans",
    "build_rotation_plans",
    "rank_plans",
]
