"""
System Wiring Module

Builds the ledger store and every service from a configuration object. This
is the entry point a transport layer holds on to.
"""

from typing import Optional

from .accounts import AccountService
from .audit import EventService, StorageEventLog
from .cards import CardService
from .config import BankingConfig, get_config
from .generator import RandomGenerator, SecureRandomGenerator
from .logging_config import get_logger, setup_logging
from .storage import LedgerStore, create_store
from .transactions import TransactionQueryService
from .users import UserService


class BankingSystem:
    """Banking backend with all components initialized"""

    def __init__(
        self,
        config: Optional[BankingConfig] = None,
        store: Optional[LedgerStore] = None,
        generator: Optional[RandomGenerator] = None,
        configure_logging: bool = False
    ):
        self.config = config or get_config()

        if configure_logging:
            setup_logging(self.config.log_level, log_format=self.config.log_format)
        self.logger = get_logger("banking.system")

        # Initialize storage
        self.store = store or create_store(self.config.database_url)
        self.generator = generator or SecureRandomGenerator(
            self.config.country_code, self.config.bank_code
        )

        # Initialize services
        self.event_log = StorageEventLog(self.store, mirror_to_logger=self.config.enable_audit_logging)
        self.events = EventService(self.store)
        self.users = UserService(self.store, self.event_log)
        self.accounts = AccountService(
            self.store, self.event_log, self.generator,
            iban_generation_attempts=self.config.iban_generation_attempts,
            default_per_page=self.config.default_per_page,
            max_per_page=self.config.max_per_page
        )
        self.cards = CardService(
            self.store, self.users, self.event_log, self.generator,
            expiration_years=self.config.card_expiration_years
        )
        self.transactions = TransactionQueryService(
            self.store,
            default_per_page=self.config.default_per_page,
            max_per_page=self.config.max_per_page
        )

        self.logger.info("Banking system initialized with %s", type(self.store).__name__)

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "BankingSystem":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
