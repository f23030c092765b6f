"""
chains - Chain access for FLARB.

- providers.py: JSON-RPC provider with first-healthy failover
- monitor.py: RPC endpoint health monitor
- wallet.py: signer and chain writer
"""

from chains.monitor import RpcMonitor
from chains.providers import FirstHealthyPolicy, RPCProvider, RPCResponse, RPCStats
from chains.wallet import ChainWriter, Receipt, SignedTransaction, Wallet

__all__ = [
    "ChainWriter",
    "FirstHealthyPolicy",
    "RPCProvider",
    "RPCResponse",
    "RPCStats",
    "Receipt",
    "RpcMonitor",
    "SignedTransaction",
    "Wallet",
]
