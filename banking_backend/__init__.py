"""
Banking Backend

Account lifecycle, deposits and transfers over a transactional ledger,
card issuance, transaction history and an append-only audit event log.
"""

__version__ = "1.0.0"
