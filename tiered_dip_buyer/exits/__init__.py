"""
Exit strategy module: trailing stop, take profit, stop loss and time-based exits.
"""

from .exit_evaluator import ExitStrategyEvaluator
from .models import ExitDecision, ExitOutcome

__all__ = ["ExitStrategyEvaluator", "ExitDecision", "ExitOutcome"]
