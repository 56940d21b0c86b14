"""
Test suite for card issuance and lookup
"""

from datetime import datetime, timezone

import pytest

from banking_backend.cards import add_years
from banking_backend.exceptions import (
    AccountNotFoundError, CardNotFoundError, OwnershipError, UserNotFoundError
)
from banking_backend.models import EventType, utc_now


class TestAddYears:

    def test_regular_date(self):
        moment = datetime(2024, 5, 17, 12, 30, tzinfo=timezone.utc)
        assert add_years(moment, 3) == datetime(2027, 5, 17, 12, 30, tzinfo=timezone.utc)

    def test_leap_day_rolls_to_march(self):
        moment = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert add_years(moment, 3) == datetime(2027, 3, 1, tzinfo=timezone.utc)

    def test_leap_day_to_leap_year(self):
        moment = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert add_years(moment, 4) == datetime(2028, 2, 29, tzinfo=timezone.utc)


class TestCardService:

    @pytest.fixture(autouse=True)
    def owner(self, system):
        self.system = system
        self.user = system.users.create_user("Iryna", "Lukina", "iryna@example.com", 2)
        self.other = system.users.create_user("Petro", "Shevchenko", "petro@example.com", 2)
        self.account = system.accounts.create(self.user.id, 1)

    def test_create_card(self):
        before = utc_now()
        card = self.system.cards.create_card(self.account.id, self.user.id)

        assert card.account_id == self.account.id
        assert card.cardholder_name == "Iryna Lukina"
        assert len(card.card_number) == 16 and card.card_number.isdigit()
        assert len(card.cvv_code) == 3 and card.cvv_code.isdigit()
        assert add_years(before, 3) <= card.expiration_date <= add_years(utc_now(), 3)

    def test_create_card_records_event(self):
        card = self.system.cards.create_card(self.account.id, self.user.id)

        event = self.system.events.get_event_list(self.user.id)[0]
        assert event.type == EventType.CARD_CREATED
        assert event.message == "new card successfully created"
        assert event.metadata["card_id"] == card.id
        assert event.metadata["account_id"] == self.account.id
        assert event.metadata["cardholder_name"] == "Iryna Lukina"
        assert event.metadata["expiration_date"] == card.expiration_date.isoformat()

    def test_create_card_on_foreign_account(self):
        with pytest.raises(OwnershipError):
            self.system.cards.create_card(self.account.id, self.other.id)

        assert self.system.cards.get_card_list_user(self.user.id) == []

    def test_create_card_on_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.system.cards.create_card(9999, self.user.id)

    def test_create_card_without_directory_entry(self):
        account = self.system.accounts.create(777, 1)

        with pytest.raises(UserNotFoundError):
            self.system.cards.create_card(account.id, 777)

        assert self.system.cards.get_card_list_user(777) == []

    def test_card_lists(self):
        usd = self.system.accounts.create(self.user.id, 2)
        first = self.system.cards.create_card(self.account.id, self.user.id)
        second = self.system.cards.create_card(usd.id, self.user.id)

        assert [c.id for c in self.system.cards.get_card_list_user(self.user.id)] == [second.id, first.id]
        assert [c.id for c in self.system.cards.get_card_list_by_account(self.user.id, usd.id)] == [second.id]
        assert self.system.cards.get_card_list_by_account(self.other.id, usd.id) == []

    def test_get_card_enforces_ownership(self):
        card = self.system.cards.create_card(self.account.id, self.user.id)

        assert self.system.cards.get_card(card.id, self.account.id, self.user.id) == card
        with pytest.raises(OwnershipError):
            self.system.cards.get_card(card.id, self.account.id, self.other.id)

    def test_get_missing_card(self):
        with pytest.raises(CardNotFoundError):
            self.system.cards.get_card(12345, self.account.id, self.user.id)
