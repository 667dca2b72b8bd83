"""
Token Ledger

A fungible-token accounting engine: balances, delegated allowances and a
conserved total supply, with Transfer and Approval events for external sinks.
"""

__version__ = "1.0.0"
