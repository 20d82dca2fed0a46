"""
Backtesting engine.

This module provides rule evaluation, position management, the simulation
loop, performance metrics and walk-forward optimization.
"""

from .metrics import PerformanceCalculator
from .parameter_grid import ParameterGrid
from .position_manager import PositionManager
from .rule_evaluator import RuleEvaluator
from .simulation import BacktestSimulator
from .walk_forward import WalkForwardOptimizer, generate_windows

__all__ = [
    "BacktestSimulator",
    "ParameterGrid",
    "PerformanceCalculator",
    "PositionManager",
    "RuleEvaluator",
    "WalkForwardOptimizer",
    "generate_windows",
]
