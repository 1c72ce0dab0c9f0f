"""
External Services Package

The ledger's two collaborators:
- storage: persistent key-value store
- catalog: income-source lookup
"""
