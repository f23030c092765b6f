"""
execution - Trade execution for FLARB.

- contract.py: flash-loan contract call encoding
- state_machine.py: dispatch lifecycle
- dispatcher.py: standard and private-relay channels
- relay.py: Flashbots relay client
- simulated.py: deterministic writer/relay for simulation mode
"""
