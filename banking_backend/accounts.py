"""
Account Service Module

Account lifecycle and money movement. Every mutating operation runs as one
unit of work on the ledger store: the PREPARED transaction, the balance
change, the transition to SENT and the audit event commit together or not at
all.
"""

from decimal import Decimal
from typing import List, Optional, Union

from .audit import EventLog
from .currency import Currency, to_amount
from .exceptions import (
    AccountAlreadyExistsError, AccountCreationError, AccountNotFoundError,
    BankingError, CurrencyMismatchError, InsufficientFundsError, OwnershipError,
    SelfTransferError, StorageError
)
from .generator import RandomGenerator
from .logging_config import get_logger, log_action, log_failure
from .models import Account, EventType, Transaction
from .pagination import (
    ACCOUNT_ORDERING_FIELDS, Orderings, Paginator, resolve_ordering,
    resolve_paginator
)
from .storage import LedgerStore

AmountLike = Union[Decimal, int, str, float]


class AccountService:
    """
    Orchestrates accounts, deposits and transfers on top of the ledger store
    """

    def __init__(
        self,
        store: LedgerStore,
        event_log: EventLog,
        generator: RandomGenerator,
        iban_generation_attempts: int = 5,
        default_per_page: int = 20,
        max_per_page: int = 100
    ):
        if iban_generation_attempts < 1:
            raise ValueError("iban_generation_attempts must be at least 1")

        self.store = store
        self.event_log = event_log
        self.generator = generator
        self.iban_generation_attempts = iban_generation_attempts
        self.default_per_page = default_per_page
        self.max_per_page = max_per_page
        self.logger = get_logger("banking.accounts")

    def create(self, user_id: int, currency_id: int) -> Account:
        """
        Open a new zero-balance account for a user

        Args:
            user_id: Owner of the account
            currency_id: One of the supported currency ids

        Returns:
            Created Account

        Raises:
            ValidationError: unknown currency id
            AccountCreationError: the store rejected the insert
            AccountAlreadyExistsError: every generated IBAN collided
            EventLogError: the ACCOUNT_CREATED event could not be recorded
        """
        Currency.from_id(currency_id)

        for attempt in range(1, self.iban_generation_attempts + 1):
            iban = self.generator.generate_iban()
            try:
                with self.store.atomic():
                    account = self.store.create_account(user_id, currency_id, iban)
                    self.event_log.add_event(
                        user_id, EventType.ACCOUNT_CREATED, "new account successfully created",
                        {"account_id": account.id, "currency_id": account.currency_id, "iban": account.iban}
                    )
            except AccountAlreadyExistsError:
                log_action(
                    self.logger, "warning", "Generated IBAN already in use, retrying",
                    user_id=user_id, action="create_account",
                    extra={"attempt": attempt, "iban": iban}
                )
                continue
            except StorageError as exc:
                error = AccountCreationError(
                    f"Account creation failed: {exc.message}", user_id=user_id, currency_id=currency_id
                )
                log_failure(self.logger, "create_account", error, user_id=user_id)
                raise error from exc
            except BankingError as exc:
                log_failure(self.logger, "create_account", exc, user_id=user_id)
                raise

            log_action(
                self.logger, "info", "Account created",
                user_id=user_id, action="create_account", resource=f"account:{account.id}",
                extra={"currency_id": currency_id, "iban": account.iban}
            )
            return account

        raise AccountAlreadyExistsError(
            f"Could not generate a unique IBAN after {self.iban_generation_attempts} attempts",
            user_id=user_id
        )

    def get_accounts_list(self, user_id: int, paginator: Optional[Paginator] = None,
                          ordering: Union[str, Orderings, None] = None) -> List[Account]:
        """Accounts owned by a user; ordering over id, iban or amount, default id ascending"""
        paginator = resolve_paginator(paginator, self.default_per_page, self.max_per_page)
        orderings = resolve_ordering(ordering, ACCOUNT_ORDERING_FIELDS)
        return self.store.get_accounts_list(user_id, paginator, orderings)

    def get_account(self, account_id: int, user_id: int) -> Account:
        return self.store.get_account(account_id, user_id)

    def delete_account(self, account_id: int, user_id: int) -> None:
        """
        Remove an owned account. Past transactions stay in the ledger.

        Raises:
            AccountNotFoundError: no account matches (account_id, user_id)
        """
        try:
            with self.store.atomic():
                # Raises unless the caller owns the account
                self.store.get_account(account_id, user_id)
                if not self.store.delete_account(account_id):
                    raise AccountNotFoundError(account_id)
                self.event_log.add_event(
                    user_id, EventType.ACCOUNT_DELETED, "account successfully deleted",
                    {"account_id": account_id}
                )
        except BankingError as exc:
            log_failure(self.logger, "delete_account", exc, user_id=user_id, resource=f"account:{account_id}")
            raise

        log_action(
            self.logger, "info", "Account deleted",
            user_id=user_id, action="delete_account", resource=f"account:{account_id}"
        )

    def deposit_account(self, account_id: int, amount: AmountLike) -> Transaction:
        """
        Credit an account from an external source

        The transaction is recorded PREPARED before the balance changes and
        moves to SENT once the credit is applied.

        Returns:
            The SENT Transaction

        Raises:
            ValidationError: amount is not a positive whole number of cents
                or exceeds the storable maximum
            AccountNotFoundError: account does not exist
            BalanceLimitError: the credit would exceed the storable balance
        """
        try:
            amount = to_amount(amount)
            with self.store.atomic():
                if not self.store.exists_account(account_id):
                    raise AccountNotFoundError(account_id)

                transaction = self.store.create_transaction(None, account_id, amount)
                self.store.deposit_account(account_id, amount)
                transaction = self.store.set_transaction_status_to_sent(transaction.id)

                self.event_log.add_event(
                    None, EventType.DEPOSIT, "deposit account successful",
                    {"account_id": account_id, "amount": amount}
                )
        except BankingError as exc:
            log_failure(self.logger, "deposit_account", exc, resource=f"account:{account_id}")
            raise

        log_action(
            self.logger, "info", "Deposit applied",
            action="deposit_account", resource=f"account:{account_id}",
            extra={"transaction_id": transaction.id, "amount": str(amount)}
        )
        return transaction

    def transfer_account(self, from_account_id: int, user_id: int, amount: AmountLike,
                         to_iban: str) -> Transaction:
        """
        Move money from a caller-owned account to the account holding ``to_iban``

        Currency and sufficiency are checked before anything is written. The
        debit itself is conditional on ownership and on the balance still
        covering the amount, so a concurrent transfer cannot overdraw.

        A transfer whose destination is the source account is refused with
        SelfTransferError instead of being recorded as a net-zero move, so
        every SENT transfer moves money between two distinct accounts.

        Returns:
            The SENT Transaction

        Raises:
            ValidationError: amount is not a positive whole number of cents
                or exceeds the storable maximum
            AccountLookupError: source id or destination IBAN unknown
            CurrencyMismatchError: the two accounts hold different currencies
            OwnershipOrLookupError: source account is not owned by the caller
            InsufficientFundsError: balance does not cover the amount
            SelfTransferError: destination is the source account
            BalanceLimitError: the credit would exceed the destination's storable balance
        """
        try:
            amount = to_amount(amount)
            with self.store.atomic():
                from_currency = self.store.get_account_currency_id_by_id(from_account_id)
                to_currency = self.store.get_account_currency_id_by_iban(to_iban)
                if from_currency != to_currency:
                    raise CurrencyMismatchError(from_currency, to_currency)

                balance = self.store.get_account_amount(from_account_id, user_id)
                if balance < amount:
                    raise InsufficientFundsError(from_account_id, amount, balance)

                to_account_id = self.store.get_account_id_by_iban(to_iban)
                if to_account_id == from_account_id:
                    raise SelfTransferError(
                        f"Account {from_account_id} cannot transfer to itself", account_id=from_account_id
                    )

                transaction = self.store.create_transaction(from_account_id, to_account_id, amount)
                self.store.transfer_account(from_account_id, user_id, amount, to_iban)
                transaction = self.store.set_transaction_status_to_sent(transaction.id)

                self.event_log.add_event(
                    user_id, EventType.WITHDRAWAL, "money transfer successful",
                    {"from_account_id": from_account_id, "to_account_id": to_account_id, "amount": amount}
                )
        except BankingError as exc:
            log_failure(self.logger, "transfer_account", exc, user_id=user_id, resource=f"account:{from_account_id}")
            raise

        log_action(
            self.logger, "info", "Transfer applied",
            user_id=user_id, action="transfer_account", resource=f"account:{from_account_id}",
            extra={"transaction_id": transaction.id, "to_account_id": to_account_id, "amount": str(amount)}
        )
        return transaction

    def block_account(self, account_id: int, user_id: int) -> None:
        """Flag an owned account as blocked (informational, does not gate money movement)"""
        self._set_blocked(account_id, user_id, True)

    def unblock_account(self, account_id: int, user_id: int) -> None:
        self._set_blocked(account_id, user_id, False)

    def _set_blocked(self, account_id: int, user_id: int, blocked: bool) -> None:
        if blocked:
            event_type, message, action = EventType.ACCOUNT_BLOCKED, "account blocked successfully", "block_account"
        else:
            event_type, message, action = EventType.ACCOUNT_UNBLOCKED, "account unblocked successfully", "unblock_account"

        try:
            with self.store.atomic():
                if not self.store.set_account_blocked(account_id, user_id, blocked):
                    raise AccountNotFoundError(account_id)
                self.event_log.add_event(user_id, event_type, message, {"account_id": account_id})
        except BankingError as exc:
            log_failure(self.logger, action, exc, user_id=user_id, resource=f"account:{account_id}")
            raise

        log_action(
            self.logger, "info", message,
            user_id=user_id, action=action, resource=f"account:{account_id}"
        )


def check_account_owner(store: LedgerStore, account_id: int, user_id: int) -> None:
    """
    Verify through the account -> user lookup that ``user_id`` owns the account

    Raises:
        AccountNotFoundError: account does not exist
        OwnershipError: account belongs to another user
    """
    owner_id = store.get_user_id_by_account_id(account_id)
    if owner_id != user_id:
        raise OwnershipError(account_id, user_id)
