"""
Options Journal - position lifecycle and cash-flow accounting for option trades.
"""

__version__ = "0.1.0"
