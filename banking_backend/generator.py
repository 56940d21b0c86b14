"""
Random Identifier Generator Module

Generates account IBANs, card numbers and CVV codes. Each generator instance
owns its own ``secrets.SystemRandom`` source; nothing is seeded globally.
"""

import secrets
from abc import ABC, abstractmethod
from typing import Optional
import random

CARD_NUMBER_LENGTH = 16
CVV_CODE_LENGTH = 3
ACCOUNT_NUMBER_LENGTH = 14
ACCOUNT_NUMBER_PADDING = "00000"

DIGITS = "0123456789"


class RandomGenerator(ABC):
    """Contract consumed by the account and card services"""

    @abstractmethod
    def generate_iban(self) -> str:
        """Generate a random account IBAN"""
        pass

    @abstractmethod
    def generate_card_number(self) -> str:
        """Generate a random 16-digit card number"""
        pass

    @abstractmethod
    def generate_cvv(self) -> str:
        """Generate a random 3-digit CVV code"""
        pass


def _to_numeric(text: str) -> str:
    # Letters map to 10..35 per ISO 13616
    return "".join(str(int(ch, 36)) for ch in text.upper())


def iban_check_digits(country_code: str, bban: str) -> str:
    """Compute ISO 7064 mod 97-10 check digits for a country code and BBAN"""
    remainder = int(_to_numeric(bban + country_code + "00")) % 97
    return f"{98 - remainder:02d}"


def iban_is_valid(iban: str) -> bool:
    """Verify the check digits of an IBAN"""
    iban = iban.replace(" ", "").upper()
    if len(iban) < 5 or not iban.isalnum():
        return False
    rearranged = iban[4:] + iban[:4]
    return int(_to_numeric(rearranged)) % 97 == 1


class SecureRandomGenerator(RandomGenerator):
    """
    Generator backed by the operating system CSPRNG.

    IBANs are laid out as ``{country}{check}{bank}00000{14 digits}`` with real
    mod-97 check digits.
    """

    def __init__(self, country_code: str, bank_code: str,
                 rng: Optional[random.Random] = None):
        if len(country_code) != 2 or not country_code.isalpha():
            raise ValueError(f"Invalid country code: {country_code!r}")
        if not bank_code.isalnum():
            raise ValueError(f"Invalid bank code: {bank_code!r}")

        self.country_code = country_code.upper()
        self.bank_code = bank_code
        self._rng = rng or secrets.SystemRandom()

    def _random_digits(self, length: int) -> str:
        return "".join(self._rng.choice(DIGITS) for _ in range(length))

    def generate_iban(self) -> str:
        bban = f"{self.bank_code}{ACCOUNT_NUMBER_PADDING}{self._random_digits(ACCOUNT_NUMBER_LENGTH)}"
        check = iban_check_digits(self.country_code, bban)
        return f"{self.country_code}{check}{bban}"

    def generate_card_number(self) -> str:
        return self._random_digits(CARD_NUMBER_LENGTH)

    def generate_cvv(self) -> str:
        return self._random_digits(CVV_CODE_LENGTH)
