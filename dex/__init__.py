"""
dex - DEX access for FLARB.

- registry.py: factory/router per DEX name
- pool_reader.py: pair resolution, reserves, implied prices, per-tick cache
"""
