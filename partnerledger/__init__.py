"""
partnerledger - Source Package

An income-and-expense ledger for individuals and small partnerships.
Turns raw income, expense and donation-payout entries into trustworthy
aggregates: company capital, per-partner balances, the donation fund,
and who owes whom.

DESIGN PRINCIPLES:
1. Derived amounts are written by exactly one calculator
2. History keeps the policy it was calculated with
3. Aggregates are recomputed, never stored
4. Legacy records are upgraded once, at load time
5. Storage and the income-source catalog are swappable
"""

__version__ = "1.0.0"
__author__ = "partnerledger Team"
