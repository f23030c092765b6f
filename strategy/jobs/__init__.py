# PATH: strategy/jobs/__init__.py
"""
Strategy jobs package.

Available entry points:
    python -m strategy.jobs.run_bot   # Arbitrage bot (live or simulation)

NOTE: This __init__.py intentionally does NOT import run_bot to avoid
side effects when importing the package.
"""

__all__: list[str] = []
