"""
Banking API

A small banking backend: an atomic funds-transfer engine over Decimal
balances, an append-only ledger with account statements, and signed
session tokens gating every protected request.
"""

__version__ = "1.0.0"
