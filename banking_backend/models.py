"""
Domain Records Module

Plain records returned by the services: accounts, ledger transactions, cards,
audit events and directory users. Amounts are Decimal, timestamps are aware
UTC datetimes.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional
from enum import Enum


def utc_now() -> datetime:
    """Current aware UTC time at microsecond resolution"""
    return datetime.now(timezone.utc)


class TransactionStatus(Enum):
    """Two-phase transaction status"""
    PREPARED = "PREPARED"  # Recorded, balance not yet mutated
    SENT = "SENT"          # Balance mutation applied


class TransactionDirection(Enum):
    """Direction of a transaction relative to the queried account (never stored)"""
    OUTGOING = "outgoing"
    INGOING = "ingoing"


class EventType(Enum):
    """Closed enumeration of audit event types"""
    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    ACCOUNT_DELETED = "ACCOUNT_DELETED"
    ACCOUNT_BLOCKED = "ACCOUNT_BLOCKED"
    ACCOUNT_UNBLOCKED = "ACCOUNT_UNBLOCKED"
    CARD_CREATED = "CARD_CREATED"
    USER_BLOCKED = "USER_BLOCKED"
    USER_UNBLOCKED = "USER_UNBLOCKED"
    WITHDRAWAL = "WITHDRAWAL"
    DEPOSIT = "DEPOSIT"


def json_compatible(value: Any) -> Any:
    """Convert Decimal, datetime and Enum values (recursively) to JSON-native types"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: json_compatible(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_compatible(v) for v in value]
    return value


@dataclass
class Account:
    """Customer account; ``amount`` is the ledger balance"""
    id: int
    iban: str
    user_id: int
    currency_id: int
    blocked: bool = False
    amount: Decimal = Decimal('0.00')

    def to_dict(self) -> Dict[str, Any]:
        return json_compatible(asdict(self))


@dataclass
class Transaction:
    """
    Ledger entry for a balance-affecting operation.

    ``from_account`` is None for external deposits. ``type`` is only filled in
    by history queries, relative to the account being queried.
    """
    id: int
    from_account: Optional[int]
    to_account: int
    amount: Decimal
    status: TransactionStatus
    date_created: datetime
    date_updated: Optional[datetime] = None
    type: Optional[TransactionDirection] = None

    @property
    def is_sent(self) -> bool:
        return self.status == TransactionStatus.SENT

    def to_dict(self) -> Dict[str, Any]:
        return json_compatible(asdict(self))


@dataclass
class Card:
    id: int
    account_id: int
    card_number: str
    cardholder_name: str
    expiration_date: datetime
    cvv_code: str

    def to_dict(self) -> Dict[str, Any]:
        return json_compatible(asdict(self))


@dataclass
class Event:
    """Append-only audit record"""
    id: int
    user_id: Optional[int]
    type: EventType
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    time: Optional[datetime] = None

    def __post_init__(self):
        # Keep metadata JSON-compatible whatever the caller passed in
        self.metadata = json_compatible(self.metadata or {})

    def to_dict(self) -> Dict[str, Any]:
        return json_compatible(asdict(self))


@dataclass
class User:
    """Directory entry consumed for display names and blocked status"""
    id: int
    name: str
    surname: str
    email: str
    role_id: int
    blocked: bool = False
    registered_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return f"{self.name} {self.surname}"

    def to_dict(self) -> Dict[str, Any]:
        return json_compatible(asdict(self))
