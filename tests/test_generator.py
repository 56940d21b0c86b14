"""
Test suite for the random identifier generator
"""

import random

import pytest

from banking_backend.generator import (
    SecureRandomGenerator, iban_check_digits, iban_is_valid
)


class TestIbanChecksum:

    def test_known_iban(self):
        # Published example IBANs
        assert iban_is_valid("GB82WEST12345698765432")
        assert iban_is_valid("UA21 3223 1300 0002 6007 2335 6600 1")
        assert iban_check_digits("GB", "WEST12345698765432") == "82"

    def test_detects_corruption(self):
        assert not iban_is_valid("GB82WEST12345698765433")
        assert not iban_is_valid("GB")
        assert not iban_is_valid("GB82-WEST")


class TestSecureRandomGenerator:

    def setup_method(self):
        """Set up test fixtures"""
        self.generator = SecureRandomGenerator("UA", "123456")

    def test_iban_layout(self):
        iban = self.generator.generate_iban()

        assert len(iban) == 2 + 2 + 6 + 5 + 14
        assert iban.startswith("UA")
        assert iban[2:4].isdigit()
        assert iban[4:10] == "123456"
        assert iban[10:15] == "00000"
        assert iban[15:].isdigit()
        assert iban_is_valid(iban)

    def test_card_number_and_cvv(self):
        card_number = self.generator.generate_card_number()
        cvv = self.generator.generate_cvv()

        assert len(card_number) == 16 and card_number.isdigit()
        assert len(cvv) == 3 and cvv.isdigit()

    def test_ibans_differ(self):
        ibans = {self.generator.generate_iban() for _ in range(50)}
        assert len(ibans) == 50

    def test_injected_source_is_reproducible(self):
        first = SecureRandomGenerator("UA", "123456", rng=random.Random(7))
        second = SecureRandomGenerator("UA", "123456", rng=random.Random(7))

        assert first.generate_iban() == second.generate_iban()
        assert first.generate_cvv() == second.generate_cvv()

    def test_instances_do_not_share_state(self):
        seeded = SecureRandomGenerator("UA", "123456", rng=random.Random(7))
        expected = SecureRandomGenerator("UA", "123456", rng=random.Random(7)).generate_iban()

        SecureRandomGenerator("UA", "123456").generate_iban()
        assert seeded.generate_iban() == expected

    def test_country_code_normalised(self):
        assert SecureRandomGenerator("ua", "123456").generate_iban().startswith("UA")

    @pytest.mark.parametrize("country_code, bank_code", [
        ("UKR", "123456"),
        ("U1", "123456"),
        ("UA", "12-34"),
    ])
    def test_invalid_configuration(self, country_code, bank_code):
        with pytest.raises(ValueError):
            SecureRandomGenerator(country_code, bank_code)
