"""
Audit Event Log Module

Append-only record of domain events. Events are written through the ledger
store so that, inside a unit of work, the audit record commits or rolls back
together with the business change it describes.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .exceptions import EventLogError, StorageError
from .logging_config import get_logger, log_action
from .models import Event, EventType
from .storage import LedgerStore


class EventLog(ABC):
    """Contract consumed by the services to record audit events"""

    @abstractmethod
    def add_event(self, user_id: Optional[int], event_type: EventType, message: str,
                  metadata: Optional[Dict[str, Any]] = None) -> Event:
        """
        Append an event.

        Raises:
            EventLogError: if the event could not be recorded
        """
        pass


class StorageEventLog(EventLog):
    """
    Event log backed by the ledger store's events table.

    Args:
        store: Ledger store that also holds accounts and transactions
        mirror_to_logger: Also emit every recorded event on the application log
    """

    def __init__(self, store: LedgerStore, mirror_to_logger: bool = True):
        self.store = store
        self.mirror_to_logger = mirror_to_logger
        self.logger = get_logger("banking.audit")

    def add_event(self, user_id: Optional[int], event_type: EventType, message: str,
                  metadata: Optional[Dict[str, Any]] = None) -> Event:
        try:
            event = self.store.append_event(user_id, event_type, message, metadata or {})
        except StorageError as exc:
            log_action(
                self.logger, "error", f"Failed to record {event_type.value} event",
                user_id=user_id, action="add_event", extra={"error": str(exc)}
            )
            raise EventLogError(
                f"Failed to record {event_type.value} event: {exc.message}",
                event_type=event_type.value, user_id=user_id
            ) from exc

        if self.mirror_to_logger:
            log_action(
                self.logger, "info", message,
                user_id=user_id, action=event_type.value,
                resource=f"event:{event.id}", extra=event.metadata
            )
        return event


class EventService:
    """Read access to the audit log"""

    def __init__(self, store: LedgerStore):
        self.store = store

    def get_event_list(self, user_id: int) -> List[Event]:
        """Events attributed to a user, newest first"""
        return self.store.get_events_list(user_id)
