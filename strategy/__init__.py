# PATH: strategy/__init__.py
"""
Strategy package for FLARB.

- config.py: bot configuration, config store, environment secrets
- scanner.py: pairwise / triangular market scanner
- memory.py: similarity recall over the trade ledger
- decision.py: fail-closed decision gate
- risk.py: risk state machine
- stats.py: stats aggregator
- bot.py: the control loop service
"""
