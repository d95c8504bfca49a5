"""
Validation module for strategy leg structure checks.
"""

from options_journal.core.validation.strategy_validator import (
    StrategyViolation,
    validate_strategy,
)

__all__ = [
    "StrategyViolation",
    "validate_strategy",
]
