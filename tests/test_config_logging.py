"""
Tests for configuration loading, structured logging and system wiring
"""

import json
import logging
import sys

import pytest

from banking_backend import config as config_module
from banking_backend.config import BankingConfig, get_config, reload_config
from banking_backend.exceptions import InsufficientFundsError, StorageError
from banking_backend.logging_config import (
    JSONFormatter, get_logger, log_action, log_failure, setup_logging
)
from banking_backend.storage import InMemoryLedgerStore, SQLiteLedgerStore
from banking_backend.system import BankingSystem


class TestBankingConfig:

    def test_defaults(self):
        config = BankingConfig()

        assert config.country_code == "UA"
        assert config.bank_code == "123456"
        assert config.card_expiration_years == 3
        assert config.iban_generation_attempts == 5
        assert config.default_per_page == 20

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("BANKING_COUNTRY_CODE", "DE")
        monkeypatch.setenv("BANKING_MAX_PER_PAGE", "10")

        config = BankingConfig()

        assert config.country_code == "DE"
        assert config.max_per_page == 10

    def test_reload_replaces_global(self, monkeypatch):
        monkeypatch.setenv("BANKING_BANK_CODE", "654321")
        try:
            reloaded = reload_config()
            assert reloaded.bank_code == "654321"
            assert get_config() is reloaded
            assert config_module.config is reloaded
        finally:
            monkeypatch.delenv("BANKING_BANK_CODE")
            reload_config()


class TestStructuredLogging:

    def test_json_formatter(self):
        record = logging.LogRecord("banking.test", logging.INFO, __file__, 1, "hello", (), None)
        record.user_id = 3
        record.action = "transfer_account"

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["user_id"] == 3
        assert payload["action"] == "transfer_account"
        assert "resource" not in payload

    def test_json_formatter_includes_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("banking.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        payload = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad" in payload["exception"]

    def test_setup_logging_replaces_handlers(self):
        logger = setup_logging("DEBUG", logger_name="banking.setup_test")
        logger = setup_logging("WARNING", logger_name="banking.setup_test", log_format="text")

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_log_action_respects_level(self):
        records = []

        class Collector(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger = get_logger("banking.log_action_test")
        logger.addHandler(Collector())
        logger.setLevel(logging.WARNING)

        log_action(logger, "info", "ignored", action="noop")
        log_action(logger, "warning", "kept", user_id=1, resource="account:2", extra={"amount": "1.00"})

        assert [r.getMessage() for r in records] == ["kept"]
        assert records[0].resource == "account:2"
        assert records[0].extra == {"amount": "1.00"}

    def test_log_failure_levels_by_kind(self):
        records = []

        class Collector(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger = get_logger("banking.log_failure_test")
        logger.addHandler(Collector())
        logger.setLevel(logging.INFO)

        log_failure(logger, "transfer_account", InsufficientFundsError(1, "60.00", "50.00"), user_id=2)
        log_failure(logger, "create_account", StorageError("disk full"))

        assert [r.levelname for r in records] == ["WARNING", "ERROR"]
        assert records[0].extra["error_code"] == "INSUFFICIENT_FUNDS"
        assert records[0].extra["account_id"] == 1
        assert records[1].extra["error_kind"] == "infrastructure"


class TestBankingSystem:

    def test_memory_url_builds_in_memory_store(self):
        with BankingSystem(BankingConfig(database_url="memory://")) as system:
            assert isinstance(system.store, InMemoryLedgerStore)

    def test_sqlite_url_builds_sqlite_store(self):
        with BankingSystem(BankingConfig(database_url="sqlite:///:memory:")) as system:
            assert isinstance(system.store, SQLiteLedgerStore)
            account = system.accounts.create(1, 1)
            assert account.iban[4:10] == "123456"

    def test_services_share_one_store(self):
        with BankingSystem(BankingConfig(database_url="memory://")) as system:
            assert system.accounts.store is system.store
            assert system.cards.store is system.store
            assert system.transactions.store is system.store
            assert system.event_log.store is system.store

    def test_config_values_reach_services(self):
        config = BankingConfig(
            database_url="memory://", card_expiration_years=5, iban_generation_attempts=2,
            default_per_page=7, country_code="PL", bank_code="999"
        )
        with BankingSystem(config) as system:
            assert system.cards.expiration_years == 5
            assert system.accounts.iban_generation_attempts == 2
            assert system.transactions.default_per_page == 7
            assert system.accounts.create(1, 1).iban.startswith("PL")

    def test_rejects_unknown_url(self):
        with pytest.raises(ValueError):
            BankingSystem(BankingConfig(database_url="mysql://localhost/bank"))
