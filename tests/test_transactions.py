"""
Test suite for transaction history queries
"""

import time
from decimal import Decimal

import pytest

from banking_backend.exceptions import AccountNotFoundError, OwnershipError, ValidationError
from banking_backend.models import TransactionDirection, TransactionStatus
from banking_backend.pagination import Paginator


class TestTransactionQueryService:

    @pytest.fixture(autouse=True)
    def ledger(self, system):
        self.system = system
        self.account = system.accounts.create(1, 1)
        self.peer = system.accounts.create(2, 1)

        self.deposit = system.accounts.deposit_account(self.account.id, Decimal('100.00'))
        time.sleep(0.002)
        self.outgoing = system.accounts.transfer_account(self.account.id, 1, Decimal('30.00'), self.peer.iban)
        system.accounts.deposit_account(self.peer.id, Decimal('50.00'))
        time.sleep(0.002)
        self.incoming = system.accounts.transfer_account(self.peer.id, 2, Decimal('45.00'), self.account.iban)

    def test_history_is_tagged(self):
        rows = self.system.transactions.get_transaction_list(self.account.id, 1)

        assert [t.id for t in rows] == [self.deposit.id, self.outgoing.id, self.incoming.id]
        assert [t.type for t in rows] == [
            TransactionDirection.INGOING,
            TransactionDirection.OUTGOING,
            TransactionDirection.INGOING
        ]
        assert all(t.status == TransactionStatus.SENT for t in rows)

    def test_history_from_peer_side(self):
        rows = self.system.transactions.get_transaction_list(self.peer.id, 2)

        tags = {t.id: t.type for t in rows}
        assert tags[self.outgoing.id] == TransactionDirection.INGOING
        assert tags[self.incoming.id] == TransactionDirection.OUTGOING

    def test_ordering_by_date_updated(self):
        rows = self.system.transactions.get_transaction_list(self.account.id, 1, "date_updated:desc")
        assert [t.id for t in rows] == [self.incoming.id, self.outgoing.id, self.deposit.id]

    def test_pagination(self):
        rows = self.system.transactions.get_transaction_list(
            self.account.id, 1, {"id": "asc"}, Paginator(page=2, per_page=2)
        )
        assert [t.id for t in rows] == [self.incoming.id]

    def test_page_past_end_is_empty(self):
        rows = self.system.transactions.get_transaction_list(
            self.account.id, 1, None, Paginator(page=5, per_page=2)
        )
        assert rows == []

    def test_repeated_reads_are_identical(self):
        first = self.system.transactions.get_transaction_list(self.account.id, 1)
        second = self.system.transactions.get_transaction_list(self.account.id, 1)
        assert first == second

    def test_rejects_unsupported_ordering(self):
        with pytest.raises(ValidationError):
            self.system.transactions.get_transaction_list(self.account.id, 1, "amount:asc")

    def test_foreign_account(self):
        with pytest.raises(OwnershipError):
            self.system.transactions.get_transaction_list(self.account.id, 2)

    def test_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.system.transactions.get_transaction_list(9999, 1)
