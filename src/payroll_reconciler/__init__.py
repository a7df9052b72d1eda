"""Payroll reconciliation engine.

Turns completed-job and attendance facts into a signed ledger of earnings and
deductions per semi-monthly pay period, and finalizes periods into a single
expense record.
"""

__version__ = "0.1.0"
