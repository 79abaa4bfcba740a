"""
Lending Ledger

Loan ledger engine for a lending back office: installment schedules,
waterfall payment allocation, penalty injection and balance/status
reconciliation, all derived from Decimal ledger state with an audit trail.
"""

__version__ = "1.0.0"
