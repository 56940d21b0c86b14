"""
Card Service Module

Issues and reads payment cards tied to accounts. Cards are immutable after
issuance; the cardholder name is stamped from the user directory at that time.
"""

from datetime import datetime
from typing import List

from .accounts import check_account_owner
from .audit import EventLog
from .exceptions import BankingError
from .generator import RandomGenerator
from .logging_config import get_logger, log_action, log_failure
from .models import Card, EventType, utc_now
from .storage import LedgerStore
from .users import UserService


def add_years(moment: datetime, years: int) -> datetime:
    """Same calendar day ``years`` later; Feb 29 rolls over to Mar 1"""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, month=3, day=1)


class CardService:
    """Card issuance and lookup with ownership enforcement"""

    def __init__(
        self,
        store: LedgerStore,
        users: UserService,
        event_log: EventLog,
        generator: RandomGenerator,
        expiration_years: int = 3
    ):
        self.store = store
        self.users = users
        self.event_log = event_log
        self.generator = generator
        self.expiration_years = expiration_years
        self.logger = get_logger("banking.cards")

    def create_card(self, account_id: int, user_id: int) -> Card:
        """
        Issue a card on an account owned by ``user_id``

        Raises:
            AccountNotFoundError: account does not exist
            OwnershipError: account belongs to another user
            UserNotFoundError: caller has no directory entry
            EventLogError: the CARD_CREATED event could not be recorded
        """
        try:
            with self.store.atomic():
                check_account_owner(self.store, account_id, user_id)

                cardholder_name = self.users.get_display_name(user_id)
                card = self.store.create_card(
                    account_id=account_id,
                    card_number=self.generator.generate_card_number(),
                    cardholder_name=cardholder_name,
                    expiration_date=add_years(utc_now(), self.expiration_years),
                    cvv_code=self.generator.generate_cvv()
                )

                self.event_log.add_event(
                    user_id, EventType.CARD_CREATED, "new card successfully created",
                    {
                        "card_id": card.id,
                        "account_id": account_id,
                        "cardholder_name": card.cardholder_name,
                        "expiration_date": card.expiration_date
                    }
                )
        except BankingError as exc:
            log_failure(self.logger, "create_card", exc, user_id=user_id, resource=f"account:{account_id}")
            raise

        log_action(
            self.logger, "info", "Card issued",
            user_id=user_id, action="create_card", resource=f"card:{card.id}",
            extra={"account_id": account_id}
        )
        return card

    def get_card_list_user(self, user_id: int) -> List[Card]:
        """Cards on every account of the user"""
        return self.store.get_card_list_user(user_id)

    def get_card_list_by_account(self, user_id: int, account_id: int) -> List[Card]:
        """Cards on one account; empty when the user does not own it"""
        return self.store.get_card_list_by_account(user_id, account_id)

    def get_card(self, card_id: int, account_id: int, user_id: int) -> Card:
        """
        Raises:
            AccountNotFoundError: account does not exist
            OwnershipError: account belongs to another user
            CardNotFoundError: no such card on the account
        """
        check_account_owner(self.store, account_id, user_id)
        return self.store.get_card(card_id, account_id)
