"""
Portfolio engine.

Risk/return statistics for a multi-asset portfolio under a
correlation-aware risk model, and a seeded Monte-Carlo allocation search.
"""

__version__ = "0.1.0"
