# PATH: data/__init__.py
"""
Persistence for FLARB.

- trade_store.py: append-only JSONL trade ledger
- state_store.py: persisted risk state (cooldown, kill switch)

Runtime files land under data/runtime/ by default.
"""
