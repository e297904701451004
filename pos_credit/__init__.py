"""
POS Credit Ledger

Customer credit for a retail point of sale: loans opened at checkout, payment
application with exact Decimal balances, repayment risk tiers, and scheduled
WhatsApp reminders with a hash-chained audit trail.
"""

__version__ = "1.0.0"
