"""
Typed exception hierarchy for the banking backend.

Every error carries a machine-readable ``code`` and an ``ErrorKind`` so the
transport layer can map it to a response class without parsing messages:

    BankingError
    |
    +-- NotFoundError                      (NOT_FOUND)
    |   +-- AccountNotFoundError
    |   +-- AccountLookupError
    |   +-- CardNotFoundError
    |   +-- UserNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- OwnershipError
    |       +-- OwnershipOrLookupError
    |
    +-- ConflictError                      (CONFLICT)
    |   +-- CurrencyMismatchError
    |   +-- InsufficientFundsError
    |   +-- SelfBlockError
    |   +-- SelfTransferError
    |   +-- AccountAlreadyExistsError
    |   +-- TransactionStateError
    |
    +-- ValidationError                    (VALIDATION)
    |
    +-- InfrastructureError                (INFRASTRUCTURE)
    |   +-- StorageError
    |   +-- AccountCreationError
    |
    +-- EventLogError                      (EVENT_LOG)
"""

from enum import Enum


class ErrorKind(Enum):
    """Coarse error classes exposed to the transport boundary"""
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    INFRASTRUCTURE = "infrastructure"
    EVENT_LOG = "event_log"


class BankingError(Exception):
    """Base exception for all banking backend errors."""

    code: str = "BANKING_ERROR"
    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


# Not found

class NotFoundError(BankingError):
    """Raised when a referenced entity does not exist."""
    code = "NOT_FOUND"
    kind = ErrorKind.NOT_FOUND


class AccountNotFoundError(NotFoundError):
    """Raised when an account id matches no account."""
    code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id, message: str = None):
        super().__init__(message or f"Account {account_id} not found", account_id=account_id)
        self.account_id = account_id


class AccountLookupError(NotFoundError):
    """Raised when an account attribute lookup by id or IBAN misses."""
    code = "ACCOUNT_LOOKUP_FAILED"


class CardNotFoundError(NotFoundError):
    code = "CARD_NOT_FOUND"

    def __init__(self, card_id, account_id):
        super().__init__(
            f"Card {card_id} not found on account {account_id}",
            card_id=card_id, account_id=account_id
        )
        self.card_id = card_id
        self.account_id = account_id


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"

    def __init__(self, user_id):
        super().__init__(f"User {user_id} not found", user_id=user_id)
        self.user_id = user_id


class TransactionNotFoundError(NotFoundError):
    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id):
        super().__init__(f"Transaction {transaction_id} not found", transaction_id=transaction_id)
        self.transaction_id = transaction_id


class OwnershipError(NotFoundError):
    """Raised when an account does not belong to the calling user."""
    code = "ACCOUNT_OWNERSHIP_MISMATCH"

    def __init__(self, account_id, user_id, message: str = None):
        super().__init__(
            message or f"Account {account_id} does not belong to user {user_id}",
            account_id=account_id, user_id=user_id
        )
        self.account_id = account_id
        self.user_id = user_id


class OwnershipOrLookupError(OwnershipError):
    """Raised when no account matches both the account id and the caller."""
    code = "ACCOUNT_NOT_OWNED_OR_MISSING"


# Conflicts

class ConflictError(BankingError):
    """Raised when the request contradicts the current ledger state."""
    code = "CONFLICT"
    kind = ErrorKind.CONFLICT


class CurrencyMismatchError(ConflictError):
    code = "CURRENCY_MISMATCH"

    def __init__(self, from_currency_id: int, to_currency_id: int):
        super().__init__(
            f"Cannot transfer between currency {from_currency_id} and currency {to_currency_id}",
            from_currency_id=from_currency_id, to_currency_id=to_currency_id
        )
        self.from_currency_id = from_currency_id
        self.to_currency_id = to_currency_id


class InsufficientFundsError(ConflictError):
    code = "INSUFFICIENT_FUNDS"

    def __init__(self, account_id, requested, available=None):
        super().__init__(
            f"Account {account_id} has insufficient funds for {requested}",
            account_id=account_id, requested=requested, available=available
        )
        self.account_id = account_id
        self.requested = requested
        self.available = available


class BalanceLimitError(ConflictError):
    """Raised when a credit would push a balance past the storable maximum."""
    code = "BALANCE_LIMIT_EXCEEDED"

    def __init__(self, account_id, amount):
        super().__init__(
            f"Crediting {amount} would exceed the balance limit of account {account_id}",
            account_id=account_id, amount=amount
        )
        self.account_id = account_id


class SelfBlockError(ConflictError):
    code = "SELF_BLOCK"


class SelfTransferError(ConflictError):
    code = "SELF_TRANSFER"


class AccountAlreadyExistsError(ConflictError):
    code = "ACCOUNT_ALREADY_EXISTS"


class TransactionStateError(ConflictError):
    """Raised when a transaction status transition is not PREPARED -> SENT."""
    code = "TRANSACTION_STATE_INVALID"


# Validation

class ValidationError(BankingError):
    """Raised for malformed amounts, currencies, ordering or pagination."""
    code = "VALIDATION_FAILED"
    kind = ErrorKind.VALIDATION


# Infrastructure

class InfrastructureError(BankingError):
    code = "INFRASTRUCTURE_FAILURE"
    kind = ErrorKind.INFRASTRUCTURE


class StorageError(InfrastructureError):
    """Raised when the durable store rejects or fails an operation."""
    code = "STORAGE_FAILURE"


class AccountCreationError(InfrastructureError):
    code = "ACCOUNT_CREATION_FAILED"


class EventLogError(BankingError):
    """Raised when an audit event could not be recorded."""
    code = "EVENT_LOG_FAILURE"
    kind = ErrorKind.EVENT_LOG
