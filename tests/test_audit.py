"""
Test suite for the audit event log

Tests event recording, failure wrapping and the event query service.
"""

import json
import logging
from decimal import Decimal

import pytest

from banking_backend.audit import EventService, StorageEventLog
from banking_backend.exceptions import EventLogError, StorageError
from banking_backend.logging_config import JSONFormatter
from banking_backend.models import EventType
from banking_backend.storage import InMemoryLedgerStore


class BrokenStore(InMemoryLedgerStore):
    def append_event(self, user_id, event_type, message, metadata):
        raise StorageError("disk full")


class CapturingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestStorageEventLog:

    def setup_method(self):
        """Set up test fixtures"""
        self.store = InMemoryLedgerStore()
        self.event_log = StorageEventLog(self.store, mirror_to_logger=False)

    def test_add_event(self):
        event = self.event_log.add_event(
            3, EventType.ACCOUNT_CREATED, "new account successfully created",
            {"account_id": 1, "amount": Decimal('12.50')}
        )

        assert event.id is not None
        assert event.user_id == 3
        assert event.type == EventType.ACCOUNT_CREATED
        assert event.metadata == {"account_id": 1, "amount": "12.50"}
        assert event.time is not None

    def test_metadata_defaults_to_empty(self):
        event = self.event_log.add_event(3, EventType.USER_UNBLOCKED, "user unblocked successfully")
        assert event.metadata == {}

    def test_storage_failure_is_wrapped(self):
        event_log = StorageEventLog(BrokenStore(), mirror_to_logger=False)

        with pytest.raises(EventLogError) as exc_info:
            event_log.add_event(1, EventType.DEPOSIT, "deposit account successful", {})

        assert isinstance(exc_info.value.__cause__, StorageError)
        assert exc_info.value.details["event_type"] == "DEPOSIT"

    def test_events_are_mirrored_to_logger(self):
        handler = CapturingHandler()
        logger = logging.getLogger("banking.audit")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            StorageEventLog(self.store).add_event(
                5, EventType.ACCOUNT_BLOCKED, "account blocked successfully", {"account_id": 9}
            )
        finally:
            logger.removeHandler(handler)

        assert len(handler.records) == 1
        payload = json.loads(JSONFormatter().format(handler.records[0]))
        assert payload["message"] == "account blocked successfully"
        assert payload["action"] == "ACCOUNT_BLOCKED"
        assert payload["user_id"] == 5
        assert payload["extra"] == {"account_id": 9}

    def test_event_rolls_back_with_unit(self):
        with pytest.raises(RuntimeError):
            with self.store.atomic():
                self.event_log.add_event(1, EventType.ACCOUNT_CREATED, "created", {})
                raise RuntimeError("business step failed")

        assert EventService(self.store).get_event_list(1) == []


class TestEventService:

    def test_event_list_per_user_newest_first(self, system):
        system.accounts.create(1, 1)
        account = system.accounts.create(1, 2)
        system.accounts.block_account(account.id, 1)
        system.accounts.create(2, 1)

        events = system.events.get_event_list(1)

        assert [e.type for e in events] == [
            EventType.ACCOUNT_BLOCKED,
            EventType.ACCOUNT_CREATED,
            EventType.ACCOUNT_CREATED
        ]
        assert all(e.user_id == 1 for e in events)
        times = [e.time for e in events]
        assert times == sorted(times, reverse=True)

    def test_empty_event_list(self, system):
        assert system.events.get_event_list(42) == []

    def test_event_to_dict(self, system):
        system.accounts.create(1, 1)
        data = system.events.get_event_list(1)[0].to_dict()

        assert data["type"] == "ACCOUNT_CREATED"
        assert isinstance(data["time"], str)
        json.dumps(data)
