"""
Ledger Store Module

Abstract ledger store interface plus in-memory (testing) and SQLite
(persistence) implementations. The store owns accounts, transactions, cards,
directory users and audit events, and is the only place balances change.

Balance mutations are expressed as single conditional statements evaluated by
the store (scoped by owner, guarded against going negative) and multi-row
changes run inside ``atomic()`` units that commit or roll back as a whole.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime
from pathlib import Path
from contextlib import contextmanager
import copy
import json
import sqlite3
import threading

from .currency import MAX_AMOUNT, MAX_MINOR_UNITS, to_minor_units, from_minor_units
from .exceptions import (
    AccountAlreadyExistsError, AccountLookupError, AccountNotFoundError, BalanceLimitError,
    CardNotFoundError, ConflictError, InsufficientFundsError,
    OwnershipOrLookupError, StorageError, TransactionNotFoundError,
    TransactionStateError, UserNotFoundError
)
from .models import (
    Account, Card, Event, EventType, Transaction, TransactionDirection,
    TransactionStatus, User, json_compatible, utc_now
)
from .pagination import Orderings, Paginator


def tag_direction(transaction: Transaction, account_id: int) -> Transaction:
    """Mark a transaction as outgoing or ingoing relative to ``account_id``"""
    if transaction.to_account == account_id:
        transaction.type = TransactionDirection.INGOING
    else:
        transaction.type = TransactionDirection.OUTGOING
    return transaction


class LedgerStore(ABC):
    """
    Abstract interface for ledger store backends.

    Units of work nest: an inner ``atomic()`` joins the outer one, and a
    failure anywhere in the unit rolls the whole unit back. A unit holds the
    store lock for its whole duration, so units on one store never interleave.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._rollback_only = False

    # Unit of work

    @abstractmethod
    def _begin(self) -> None:
        pass

    @abstractmethod
    def _commit(self) -> None:
        pass

    @abstractmethod
    def _rollback(self) -> None:
        pass

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def begin_transaction(self) -> None:
        """Open a unit of work, or join the one already open"""
        self._lock.acquire()
        try:
            if self._depth == 0:
                self._begin()
                self._rollback_only = False
        except Exception:
            self._lock.release()
            raise
        self._depth += 1

    def commit(self) -> None:
        """Commit the unit of work once the outermost level completes"""
        if self._depth == 0:
            raise StorageError("Commit requested without an open transaction")
        try:
            self._depth -= 1
            if self._depth == 0:
                if self._rollback_only:
                    self._rollback()
                    raise StorageError("Transaction was rolled back by a nested unit")
                try:
                    self._commit()
                except StorageError:
                    self._rollback()
                    raise
        finally:
            self._lock.release()

    def rollback(self) -> None:
        """Roll back the unit of work; nested levels mark it rollback-only"""
        if self._depth == 0:
            raise StorageError("Rollback requested without an open transaction")
        try:
            self._depth -= 1
            if self._depth == 0:
                self._rollback()
            else:
                self._rollback_only = True
        finally:
            self._lock.release()

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield self
        except Exception:
            self.rollback()
            raise
        else:
            self.commit()

    # Accounts

    @abstractmethod
    def create_account(self, user_id: int, currency_id: int, iban: str) -> Account:
        """Insert an account with zero balance; duplicate IBAN raises AccountAlreadyExistsError"""
        pass

    @abstractmethod
    def exists_account(self, account_id: int) -> bool:
        pass

    @abstractmethod
    def get_user_id_by_account_id(self, account_id: int) -> int:
        """Owner of an account; raises AccountNotFoundError"""
        pass

    @abstractmethod
    def get_account_id_by_iban(self, iban: str) -> int:
        """Raises AccountLookupError on a miss"""
        pass

    @abstractmethod
    def get_account_currency_id_by_id(self, account_id: int) -> int:
        """Raises AccountLookupError on a miss"""
        pass

    @abstractmethod
    def get_account_currency_id_by_iban(self, iban: str) -> int:
        """Raises AccountLookupError on a miss"""
        pass

    @abstractmethod
    def get_account_amount(self, account_id: int, user_id: int) -> Decimal:
        """Balance scoped to the owner; raises OwnershipOrLookupError"""
        pass

    @abstractmethod
    def get_accounts_list(self, user_id: int, paginator: Paginator,
                          orderings: Orderings) -> List[Account]:
        pass

    @abstractmethod
    def get_account(self, account_id: int, user_id: int) -> Account:
        """Account scoped to the owner; raises AccountNotFoundError"""
        pass

    @abstractmethod
    def delete_account(self, account_id: int) -> bool:
        """Remove an account, leaving its transactions in place"""
        pass

    @abstractmethod
    def deposit_account(self, account_id: int, amount: Decimal) -> None:
        """Increment a balance; raises AccountNotFoundError"""
        pass

    @abstractmethod
    def transfer_account(self, from_account_id: int, user_id: int,
                         amount: Decimal, to_iban: str) -> None:
        """
        Debit the owner's account and credit the account holding ``to_iban``
        as one all-or-nothing unit.

        Raises:
            InsufficientFundsError: the debit would drive the balance negative
            OwnershipOrLookupError: no account matches (id, user id)
            AccountLookupError: no account holds ``to_iban``
        """
        pass

    @abstractmethod
    def set_account_blocked(self, account_id: int, user_id: int, blocked: bool) -> bool:
        """Scoped flag update; False when no account matches (id, user id)"""
        pass

    # Transactions

    @abstractmethod
    def create_transaction(self, from_account: Optional[int], to_account: int,
                           amount: Decimal) -> Transaction:
        """Record a PREPARED transaction"""
        pass

    @abstractmethod
    def set_transaction_status_to_sent(self, transaction_id: int) -> Transaction:
        """PREPARED -> SENT, stamping date_updated; any other transition raises"""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Transaction:
        pass

    @abstractmethod
    def get_transaction_list(self, account_id: int, orderings: Orderings,
                             paginator: Paginator) -> List[Transaction]:
        """Transactions where the account is source or destination, direction-tagged"""
        pass

    @abstractmethod
    def list_prepared_transactions(self) -> List[Transaction]:
        """Transactions never confirmed as SENT"""
        pass

    # Cards

    @abstractmethod
    def create_card(self, account_id: int, card_number: str, cardholder_name: str,
                    expiration_date: datetime, cvv_code: str) -> Card:
        pass

    @abstractmethod
    def get_card_list_user(self, user_id: int) -> List[Card]:
        pass

    @abstractmethod
    def get_card_list_by_account(self, user_id: int, account_id: int) -> List[Card]:
        pass

    @abstractmethod
    def get_card(self, card_id: int, account_id: int) -> Card:
        """Raises CardNotFoundError"""
        pass

    # Users

    @abstractmethod
    def create_user(self, name: str, surname: str, email: str, role_id: int) -> User:
        pass

    @abstractmethod
    def get_user(self, user_id: int) -> User:
        """Raises UserNotFoundError"""
        pass

    @abstractmethod
    def set_user_blocked(self, user_id: int, blocked: bool) -> bool:
        pass

    # Events

    @abstractmethod
    def append_event(self, user_id: Optional[int], event_type: EventType, message: str,
                     metadata: Dict[str, Any]) -> Event:
        pass

    @abstractmethod
    def get_events_list(self, user_id: int) -> List[Event]:
        """Events for a user, newest first"""
        pass

    @abstractmethod
    def close(self) -> None:
        pass


def _sort_rows(rows: list, orderings: Orderings) -> list:
    """Multi-key sort matching SQL ORDER BY, NULLs first when ascending"""
    for field_name, direction in reversed(list(orderings.items())):
        rows.sort(
            key=lambda row: (getattr(row, field_name) is not None, getattr(row, field_name)),
            reverse=direction == "desc"
        )
    return rows


def _page(rows: list, paginator: Paginator) -> list:
    return rows[paginator.offset:paginator.offset + paginator.limit]


class InMemoryLedgerStore(LedgerStore):
    """In-memory ledger store for testing; rollbacks replay an undo log of touched rows"""

    TABLES = ("users", "accounts", "transactions", "cards", "events")

    def __init__(self):
        super().__init__()
        self._tables: Dict[str, Dict[int, Any]] = {name: {} for name in self.TABLES}
        self._sequences: Dict[str, int] = {name: 0 for name in self.TABLES}
        self._undo: Optional[List[tuple]] = None
        self._saved_sequences: Optional[Dict[str, int]] = None

    def _begin(self) -> None:
        self._undo = []
        self._saved_sequences = dict(self._sequences)

    def _commit(self) -> None:
        self._undo = None
        self._saved_sequences = None

    def _rollback(self) -> None:
        if self._undo is not None:
            for table, key, row in reversed(self._undo):
                if row is None:
                    self._tables[table].pop(key, None)
                else:
                    self._tables[table][key] = row
            self._sequences = self._saved_sequences
        self._undo = None
        self._saved_sequences = None

    def _save(self, table: str, key: int) -> None:
        """Remember a row's state before its first write in the open unit"""
        if self._undo is not None:
            self._undo.append((table, key, copy.deepcopy(self._tables[table].get(key))))

    def _next_id(self, table: str) -> int:
        self._sequences[table] += 1
        return self._sequences[table]

    def _account(self, account_id: int) -> Optional[Account]:
        return self._tables["accounts"].get(account_id)

    def _account_by_iban(self, iban: str) -> Optional[Account]:
        for account in self._tables["accounts"].values():
            if account.iban == iban:
                return account
        return None

    def _owned_account(self, account_id: int, user_id: int) -> Optional[Account]:
        account = self._account(account_id)
        if account is not None and account.user_id == user_id:
            return account
        return None

    # Accounts

    def create_account(self, user_id: int, currency_id: int, iban: str) -> Account:
        with self._lock:
            if self._account_by_iban(iban) is not None:
                raise AccountAlreadyExistsError(f"Account with IBAN {iban} already exists", iban=iban)
            account = Account(
                id=self._next_id("accounts"),
                iban=iban,
                user_id=user_id,
                currency_id=currency_id,
                blocked=False,
                amount=Decimal('0.00')
            )
            self._save("accounts", account.id)
            self._tables["accounts"][account.id] = account
            return copy.copy(account)

    def exists_account(self, account_id: int) -> bool:
        with self._lock:
            return account_id in self._tables["accounts"]

    def get_user_id_by_account_id(self, account_id: int) -> int:
        with self._lock:
            account = self._account(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            return account.user_id

    def get_account_id_by_iban(self, iban: str) -> int:
        with self._lock:
            account = self._account_by_iban(iban)
            if account is None:
                raise AccountLookupError(f"No account with IBAN {iban}", iban=iban)
            return account.id

    def get_account_currency_id_by_id(self, account_id: int) -> int:
        with self._lock:
            account = self._account(account_id)
            if account is None:
                raise AccountLookupError(f"No account with id {account_id}", account_id=account_id)
            return account.currency_id

    def get_account_currency_id_by_iban(self, iban: str) -> int:
        with self._lock:
            account = self._account_by_iban(iban)
            if account is None:
                raise AccountLookupError(f"No account with IBAN {iban}", iban=iban)
            return account.currency_id

    def get_account_amount(self, account_id: int, user_id: int) -> Decimal:
        with self._lock:
            account = self._owned_account(account_id, user_id)
            if account is None:
                raise OwnershipOrLookupError(account_id, user_id)
            return account.amount

    def get_accounts_list(self, user_id: int, paginator: Paginator,
                          orderings: Orderings) -> List[Account]:
        with self._lock:
            rows = [copy.copy(a) for a in self._tables["accounts"].values() if a.user_id == user_id]
        return _page(_sort_rows(rows, orderings), paginator)

    def get_account(self, account_id: int, user_id: int) -> Account:
        with self._lock:
            account = self._owned_account(account_id, user_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            return copy.copy(account)

    def delete_account(self, account_id: int) -> bool:
        with self._lock:
            self._save("accounts", account_id)
            return self._tables["accounts"].pop(account_id, None) is not None

    def deposit_account(self, account_id: int, amount: Decimal) -> None:
        with self._lock:
            account = self._account(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            if account.amount + amount > MAX_AMOUNT:
                raise BalanceLimitError(account_id, amount)
            self._save("accounts", account_id)
            account.amount = account.amount + amount

    def transfer_account(self, from_account_id: int, user_id: int,
                         amount: Decimal, to_iban: str) -> None:
        with self.atomic():
            source = self._owned_account(from_account_id, user_id)
            if source is None:
                raise OwnershipOrLookupError(from_account_id, user_id)
            if source.amount < amount:
                raise InsufficientFundsError(from_account_id, amount, source.amount)
            self._save("accounts", source.id)
            source.amount = source.amount - amount

            destination = self._account_by_iban(to_iban)
            if destination is None:
                raise AccountLookupError(f"No account with IBAN {to_iban}", iban=to_iban)
            if destination.amount + amount > MAX_AMOUNT:
                raise BalanceLimitError(destination.id, amount)
            self._save("accounts", destination.id)
            destination.amount = destination.amount + amount

    def set_account_blocked(self, account_id: int, user_id: int, blocked: bool) -> bool:
        with self._lock:
            account = self._owned_account(account_id, user_id)
            if account is None:
                return False
            self._save("accounts", account_id)
            account.blocked = blocked
            return True

    # Transactions

    def create_transaction(self, from_account: Optional[int], to_account: int,
                           amount: Decimal) -> Transaction:
        with self._lock:
            transaction = Transaction(
                id=self._next_id("transactions"),
                from_account=from_account,
                to_account=to_account,
                amount=amount,
                status=TransactionStatus.PREPARED,
                date_created=utc_now()
            )
            self._save("transactions", transaction.id)
            self._tables["transactions"][transaction.id] = transaction
            return copy.copy(transaction)

    def set_transaction_status_to_sent(self, transaction_id: int) -> Transaction:
        with self._lock:
            transaction = self._tables["transactions"].get(transaction_id)
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)
            if transaction.status != TransactionStatus.PREPARED:
                raise TransactionStateError(
                    f"Transaction {transaction_id} is {transaction.status.value}, expected PREPARED",
                    transaction_id=transaction_id
                )
            self._save("transactions", transaction_id)
            transaction.status = TransactionStatus.SENT
            transaction.date_updated = utc_now()
            return copy.copy(transaction)

    def get_transaction(self, transaction_id: int) -> Transaction:
        with self._lock:
            transaction = self._tables["transactions"].get(transaction_id)
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)
            return copy.copy(transaction)

    def get_transaction_list(self, account_id: int, orderings: Orderings,
                             paginator: Paginator) -> List[Transaction]:
        with self._lock:
            rows = [
                copy.copy(t) for t in self._tables["transactions"].values()
                if t.from_account == account_id or t.to_account == account_id
            ]
        rows = _page(_sort_rows(rows, orderings), paginator)
        return [tag_direction(t, account_id) for t in rows]

    def list_prepared_transactions(self) -> List[Transaction]:
        with self._lock:
            return [
                copy.copy(t) for t in self._tables["transactions"].values()
                if t.status == TransactionStatus.PREPARED
            ]

    # Cards

    def create_card(self, account_id: int, card_number: str, cardholder_name: str,
                    expiration_date: datetime, cvv_code: str) -> Card:
        with self._lock:
            card = Card(
                id=self._next_id("cards"),
                account_id=account_id,
                card_number=card_number,
                cardholder_name=cardholder_name,
                expiration_date=expiration_date,
                cvv_code=cvv_code
            )
            self._save("cards", card.id)
            self._tables["cards"][card.id] = card
            return copy.copy(card)

    def _cards_for(self, accounts: Dict[int, Account]) -> List[Card]:
        cards = [copy.copy(c) for c in self._tables["cards"].values() if c.account_id in accounts]
        cards.sort(key=lambda c: c.id)
        cards.sort(key=lambda c: accounts[c.account_id].currency_id, reverse=True)
        return cards

    def get_card_list_user(self, user_id: int) -> List[Card]:
        with self._lock:
            accounts = {a.id: a for a in self._tables["accounts"].values() if a.user_id == user_id}
            return self._cards_for(accounts)

    def get_card_list_by_account(self, user_id: int, account_id: int) -> List[Card]:
        with self._lock:
            account = self._owned_account(account_id, user_id)
            if account is None:
                return []
            return self._cards_for({account.id: account})

    def get_card(self, card_id: int, account_id: int) -> Card:
        with self._lock:
            card = self._tables["cards"].get(card_id)
            if card is None or card.account_id != account_id:
                raise CardNotFoundError(card_id, account_id)
            return copy.copy(card)

    # Users

    def create_user(self, name: str, surname: str, email: str, role_id: int) -> User:
        with self._lock:
            if any(u.email == email for u in self._tables["users"].values()):
                raise ConflictError(f"User with email {email} already exists", email=email)
            user = User(
                id=self._next_id("users"),
                name=name,
                surname=surname,
                email=email,
                role_id=role_id,
                blocked=False,
                registered_at=utc_now()
            )
            self._save("users", user.id)
            self._tables["users"][user.id] = user
            return copy.copy(user)

    def get_user(self, user_id: int) -> User:
        with self._lock:
            user = self._tables["users"].get(user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            return copy.copy(user)

    def set_user_blocked(self, user_id: int, blocked: bool) -> bool:
        with self._lock:
            user = self._tables["users"].get(user_id)
            if user is None:
                return False
            self._save("users", user_id)
            user.blocked = blocked
            return True

    # Events

    def append_event(self, user_id: Optional[int], event_type: EventType, message: str,
                     metadata: Dict[str, Any]) -> Event:
        with self._lock:
            event = Event(
                id=self._next_id("events"),
                user_id=user_id,
                type=event_type,
                message=message,
                metadata=copy.deepcopy(metadata),
                time=utc_now()
            )
            self._save("events", event.id)
            self._tables["events"][event.id] = event
            return copy.deepcopy(event)

    def get_events_list(self, user_id: int) -> List[Event]:
        with self._lock:
            events = [copy.deepcopy(e) for e in self._tables["events"].values() if e.user_id == user_id]
        events.sort(key=lambda e: (e.time, e.id), reverse=True)
        return events

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    surname TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    role_id INTEGER NOT NULL,
    blocked INTEGER NOT NULL DEFAULT 0,
    registered_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    iban TEXT NOT NULL UNIQUE,
    user_id INTEGER NOT NULL,
    currency_id INTEGER NOT NULL,
    blocked INTEGER NOT NULL DEFAULT 0,
    amount INTEGER NOT NULL DEFAULT 0 CHECK (amount >= 0)
);
CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_account INTEGER,
    to_account INTEGER NOT NULL,
    amount INTEGER NOT NULL CHECK (amount > 0),
    status TEXT NOT NULL CHECK (status IN ('PREPARED', 'SENT')),
    date_created TEXT NOT NULL,
    date_updated TEXT
);
CREATE INDEX IF NOT EXISTS idx_transactions_from_account ON transactions(from_account);
CREATE INDEX IF NOT EXISTS idx_transactions_to_account ON transactions(to_account);

CREATE TABLE IF NOT EXISTS cards (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id INTEGER NOT NULL,
    card_number TEXT NOT NULL,
    cardholder_name TEXT NOT NULL,
    expiration_date TEXT NOT NULL,
    cvv_code TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cards_account_id ON cards(account_id);

CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    type TEXT NOT NULL,
    message TEXT NOT NULL,
    metadata TEXT NOT NULL,
    time TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_user_id ON events(user_id);
"""


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    # Fixed width so text ordering matches time ordering
    return value.isoformat(timespec="microseconds") if value is not None else None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value is not None else None


class SQLiteLedgerStore(LedgerStore):
    """SQLite ledger store for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        super().__init__()
        self.db_path = str(db_path)
        # Autocommit mode; units of work issue BEGIN IMMEDIATE / COMMIT explicitly
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row

        with self._lock:
            try:
                if self.db_path != ":memory:":
                    self._connection.execute("PRAGMA journal_mode = WAL")
                    self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.executescript(SCHEMA)
            except sqlite3.Error as exc:
                raise StorageError(f"Schema initialisation failed: {exc}") from exc

    def _execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._connection.execute(query, params)
        except (sqlite3.Error, OverflowError) as exc:
            raise StorageError(f"Query failed: {exc}", query=query) from exc

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._execute(query, params).fetchone()

    def _fetchall(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._execute(query, params).fetchall()

    def _begin(self) -> None:
        self._execute("BEGIN IMMEDIATE")

    def _commit(self) -> None:
        self._execute("COMMIT")

    def _rollback(self) -> None:
        if self._connection.in_transaction:
            self._execute("ROLLBACK")

    @staticmethod
    def _order_by(orderings: Orderings) -> str:
        # Field names come from the validated allow-lists only
        return ", ".join(f"{field_name} {direction.upper()}" for field_name, direction in orderings.items())

    @staticmethod
    def _account_from_row(row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            iban=row["iban"],
            user_id=row["user_id"],
            currency_id=row["currency_id"],
            blocked=bool(row["blocked"]),
            amount=from_minor_units(row["amount"])
        )

    @staticmethod
    def _transaction_from_row(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"],
            from_account=row["from_account"],
            to_account=row["to_account"],
            amount=from_minor_units(row["amount"]),
            status=TransactionStatus(row["status"]),
            date_created=_parse_timestamp(row["date_created"]),
            date_updated=_parse_timestamp(row["date_updated"])
        )

    @staticmethod
    def _card_from_row(row: sqlite3.Row) -> Card:
        return Card(
            id=row["id"],
            account_id=row["account_id"],
            card_number=row["card_number"],
            cardholder_name=row["cardholder_name"],
            expiration_date=_parse_timestamp(row["expiration_date"]),
            cvv_code=row["cvv_code"]
        )

    @staticmethod
    def _user_from_row(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            name=row["name"],
            surname=row["surname"],
            email=row["email"],
            role_id=row["role_id"],
            blocked=bool(row["blocked"]),
            registered_at=_parse_timestamp(row["registered_at"])
        )

    @staticmethod
    def _event_from_row(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            user_id=row["user_id"],
            type=EventType(row["type"]),
            message=row["message"],
            metadata=json.loads(row["metadata"]),
            time=_parse_timestamp(row["time"])
        )

    # Accounts

    def create_account(self, user_id: int, currency_id: int, iban: str) -> Account:
        with self._lock:
            try:
                cursor = self._connection.execute(
                    "INSERT INTO accounts (iban, user_id, currency_id, blocked, amount) VALUES (?, ?, ?, 0, 0)",
                    (iban, user_id, currency_id)
                )
            except sqlite3.IntegrityError as exc:
                raise AccountAlreadyExistsError(f"Account with IBAN {iban} already exists", iban=iban) from exc
            except sqlite3.Error as exc:
                raise StorageError(f"Account insert failed: {exc}") from exc

            row = self._fetchone("SELECT * FROM accounts WHERE id = ?", (cursor.lastrowid,))
            return self._account_from_row(row)

    def exists_account(self, account_id: int) -> bool:
        row = self._fetchone("SELECT EXISTS(SELECT 1 FROM accounts WHERE id = ?) AS present", (account_id,))
        return bool(row["present"])

    def get_user_id_by_account_id(self, account_id: int) -> int:
        row = self._fetchone("SELECT user_id FROM accounts WHERE id = ?", (account_id,))
        if row is None:
            raise AccountNotFoundError(account_id)
        return row["user_id"]

    def get_account_id_by_iban(self, iban: str) -> int:
        row = self._fetchone("SELECT id FROM accounts WHERE iban = ?", (iban,))
        if row is None:
            raise AccountLookupError(f"No account with IBAN {iban}", iban=iban)
        return row["id"]

    def get_account_currency_id_by_id(self, account_id: int) -> int:
        row = self._fetchone("SELECT currency_id FROM accounts WHERE id = ?", (account_id,))
        if row is None:
            raise AccountLookupError(f"No account with id {account_id}", account_id=account_id)
        return row["currency_id"]

    def get_account_currency_id_by_iban(self, iban: str) -> int:
        row = self._fetchone("SELECT currency_id FROM accounts WHERE iban = ?", (iban,))
        if row is None:
            raise AccountLookupError(f"No account with IBAN {iban}", iban=iban)
        return row["currency_id"]

    def get_account_amount(self, account_id: int, user_id: int) -> Decimal:
        row = self._fetchone(
            "SELECT amount FROM accounts WHERE id = ? AND user_id = ?", (account_id, user_id)
        )
        if row is None:
            raise OwnershipOrLookupError(account_id, user_id)
        return from_minor_units(row["amount"])

    def get_accounts_list(self, user_id: int, paginator: Paginator,
                          orderings: Orderings) -> List[Account]:
        rows = self._fetchall(
            f"SELECT * FROM accounts WHERE user_id = ? ORDER BY {self._order_by(orderings)} LIMIT ? OFFSET ?",
            (user_id, paginator.limit, paginator.offset)
        )
        return [self._account_from_row(row) for row in rows]

    def get_account(self, account_id: int, user_id: int) -> Account:
        row = self._fetchone("SELECT * FROM accounts WHERE id = ? AND user_id = ?", (account_id, user_id))
        if row is None:
            raise AccountNotFoundError(account_id)
        return self._account_from_row(row)

    def delete_account(self, account_id: int) -> bool:
        with self._lock:
            cursor = self._execute("DELETE FROM accounts WHERE id = ?", (account_id,))
            return cursor.rowcount > 0

    def deposit_account(self, account_id: int, amount: Decimal) -> None:
        units = to_minor_units(amount)
        with self._lock:
            cursor = self._execute(
                "UPDATE accounts SET amount = amount + ? WHERE id = ? AND amount <= ?",
                (units, account_id, MAX_MINOR_UNITS - units)
            )
            if cursor.rowcount != 1:
                if self._fetchone("SELECT 1 FROM accounts WHERE id = ?", (account_id,)) is None:
                    raise AccountNotFoundError(account_id)
                raise BalanceLimitError(account_id, amount)

    def transfer_account(self, from_account_id: int, user_id: int,
                         amount: Decimal, to_iban: str) -> None:
        units = to_minor_units(amount)
        with self.atomic():
            debit = self._execute(
                "UPDATE accounts SET amount = amount - ? WHERE id = ? AND user_id = ? AND amount >= ?",
                (units, from_account_id, user_id, units)
            )
            if debit.rowcount != 1:
                available = self._fetchone(
                    "SELECT amount FROM accounts WHERE id = ? AND user_id = ?", (from_account_id, user_id)
                )
                if available is None:
                    raise OwnershipOrLookupError(from_account_id, user_id)
                raise InsufficientFundsError(from_account_id, amount, from_minor_units(available["amount"]))

            credit = self._execute(
                "UPDATE accounts SET amount = amount + ? WHERE iban = ? AND amount <= ?",
                (units, to_iban, MAX_MINOR_UNITS - units)
            )
            if credit.rowcount != 1:
                destination = self._fetchone("SELECT id FROM accounts WHERE iban = ?", (to_iban,))
                if destination is None:
                    raise AccountLookupError(f"No account with IBAN {to_iban}", iban=to_iban)
                raise BalanceLimitError(destination["id"], amount)

    def set_account_blocked(self, account_id: int, user_id: int, blocked: bool) -> bool:
        with self._lock:
            cursor = self._execute(
                "UPDATE accounts SET blocked = ? WHERE id = ? AND user_id = ?",
                (int(blocked), account_id, user_id)
            )
            return cursor.rowcount > 0

    # Transactions

    def create_transaction(self, from_account: Optional[int], to_account: int,
                           amount: Decimal) -> Transaction:
        with self._lock:
            cursor = self._execute(
                "INSERT INTO transactions (from_account, to_account, amount, status, date_created) "
                "VALUES (?, ?, ?, ?, ?)",
                (from_account, to_account, to_minor_units(amount),
                 TransactionStatus.PREPARED.value, _timestamp(utc_now()))
            )
            return self.get_transaction(cursor.lastrowid)

    def set_transaction_status_to_sent(self, transaction_id: int) -> Transaction:
        with self._lock:
            cursor = self._execute(
                "UPDATE transactions SET status = ?, date_updated = ? WHERE id = ? AND status = ?",
                (TransactionStatus.SENT.value, _timestamp(utc_now()), transaction_id,
                 TransactionStatus.PREPARED.value)
            )
            if cursor.rowcount != 1:
                current = self.get_transaction(transaction_id)
                raise TransactionStateError(
                    f"Transaction {transaction_id} is {current.status.value}, expected PREPARED",
                    transaction_id=transaction_id
                )
            return self.get_transaction(transaction_id)

    def get_transaction(self, transaction_id: int) -> Transaction:
        row = self._fetchone("SELECT * FROM transactions WHERE id = ?", (transaction_id,))
        if row is None:
            raise TransactionNotFoundError(transaction_id)
        return self._transaction_from_row(row)

    def get_transaction_list(self, account_id: int, orderings: Orderings,
                             paginator: Paginator) -> List[Transaction]:
        rows = self._fetchall(
            "SELECT * FROM transactions WHERE from_account = ? OR to_account = ? "
            f"ORDER BY {self._order_by(orderings)} LIMIT ? OFFSET ?",
            (account_id, account_id, paginator.limit, paginator.offset)
        )
        return [tag_direction(self._transaction_from_row(row), account_id) for row in rows]

    def list_prepared_transactions(self) -> List[Transaction]:
        rows = self._fetchall(
            "SELECT * FROM transactions WHERE status = ? ORDER BY id",
            (TransactionStatus.PREPARED.value,)
        )
        return [self._transaction_from_row(row) for row in rows]

    # Cards

    def create_card(self, account_id: int, card_number: str, cardholder_name: str,
                    expiration_date: datetime, cvv_code: str) -> Card:
        with self._lock:
            cursor = self._execute(
                "INSERT INTO cards (account_id, card_number, cardholder_name, expiration_date, cvv_code) "
                "VALUES (?, ?, ?, ?, ?)",
                (account_id, card_number, cardholder_name, _timestamp(expiration_date), cvv_code)
            )
            row = self._fetchone("SELECT * FROM cards WHERE id = ?", (cursor.lastrowid,))
            return self._card_from_row(row)

    def get_card_list_user(self, user_id: int) -> List[Card]:
        rows = self._fetchall(
            "SELECT c.* FROM cards c INNER JOIN accounts a ON a.id = c.account_id "
            "WHERE a.user_id = ? ORDER BY a.currency_id DESC, c.id ASC",
            (user_id,)
        )
        return [self._card_from_row(row) for row in rows]

    def get_card_list_by_account(self, user_id: int, account_id: int) -> List[Card]:
        rows = self._fetchall(
            "SELECT c.* FROM cards c INNER JOIN accounts a ON a.id = c.account_id "
            "WHERE a.user_id = ? AND a.id = ? ORDER BY a.currency_id DESC, c.id ASC",
            (user_id, account_id)
        )
        return [self._card_from_row(row) for row in rows]

    def get_card(self, card_id: int, account_id: int) -> Card:
        row = self._fetchone("SELECT * FROM cards WHERE id = ? AND account_id = ?", (card_id, account_id))
        if row is None:
            raise CardNotFoundError(card_id, account_id)
        return self._card_from_row(row)

    # Users

    def create_user(self, name: str, surname: str, email: str, role_id: int) -> User:
        with self._lock:
            try:
                cursor = self._connection.execute(
                    "INSERT INTO users (name, surname, email, role_id, blocked, registered_at) "
                    "VALUES (?, ?, ?, ?, 0, ?)",
                    (name, surname, email, role_id, _timestamp(utc_now()))
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError(f"User with email {email} already exists", email=email) from exc
            except sqlite3.Error as exc:
                raise StorageError(f"User insert failed: {exc}") from exc
            return self.get_user(cursor.lastrowid)

    def get_user(self, user_id: int) -> User:
        row = self._fetchone("SELECT * FROM users WHERE id = ?", (user_id,))
        if row is None:
            raise UserNotFoundError(user_id)
        return self._user_from_row(row)

    def set_user_blocked(self, user_id: int, blocked: bool) -> bool:
        with self._lock:
            cursor = self._execute("UPDATE users SET blocked = ? WHERE id = ?", (int(blocked), user_id))
            return cursor.rowcount > 0

    # Events

    def append_event(self, user_id: Optional[int], event_type: EventType, message: str,
                     metadata: Dict[str, Any]) -> Event:
        with self._lock:
            cursor = self._execute(
                "INSERT INTO events (user_id, type, message, metadata, time) VALUES (?, ?, ?, ?, ?)",
                (user_id, event_type.value, message, json.dumps(json_compatible(metadata)),
                 _timestamp(utc_now()))
            )
            row = self._fetchone("SELECT * FROM events WHERE id = ?", (cursor.lastrowid,))
            return self._event_from_row(row)

    def get_events_list(self, user_id: int) -> List[Event]:
        rows = self._fetchall(
            "SELECT * FROM events WHERE user_id = ? ORDER BY time DESC, id DESC", (user_id,)
        )
        return [self._event_from_row(row) for row in rows]

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_store(database_url: str) -> LedgerStore:
    """
    Build a ledger store from a database URL.

    Supported: ``memory://`` and ``sqlite:///<path>`` (``sqlite:///:memory:``
    for a throwaway database).
    """
    if database_url.startswith("memory://"):
        return InMemoryLedgerStore()
    if database_url.startswith("sqlite:///"):
        return SQLiteLedgerStore(database_url[len("sqlite:///"):] or ":memory:")
    raise ValueError(f"Unsupported database URL: {database_url}")
