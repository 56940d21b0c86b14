"""
Transaction Query Service Module

Read access to the ledger for one account at a time.
"""

from typing import List, Optional, Union

from .accounts import check_account_owner
from .models import Transaction
from .pagination import (
    TRANSACTION_ORDERING_FIELDS, Orderings, Paginator, resolve_ordering,
    resolve_paginator
)
from .storage import LedgerStore


class TransactionQueryService:

    def __init__(self, store: LedgerStore, default_per_page: int = 20, max_per_page: int = 100):
        self.store = store
        self.default_per_page = default_per_page
        self.max_per_page = max_per_page

    def get_transaction_list(
        self,
        account_id: int,
        user_id: int,
        ordering: Union[str, Orderings, None] = None,
        paginator: Optional[Paginator] = None
    ) -> List[Transaction]:
        """
        Transactions where the account is source or destination

        Each result is tagged ``outgoing`` or ``ingoing`` relative to
        ``account_id``. Ordering is over ``id`` and ``date_updated``, default
        id ascending.

        Raises:
            AccountNotFoundError: account does not exist
            OwnershipError: account belongs to another user
            ValidationError: bad ordering or page size
        """
        check_account_owner(self.store, account_id, user_id)

        orderings = resolve_ordering(ordering, TRANSACTION_ORDERING_FIELDS)
        paginator = resolve_paginator(paginator, self.default_per_page, self.max_per_page)
        return self.store.get_transaction_list(account_id, orderings, paginator)
