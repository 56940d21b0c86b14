"""
Shared fixtures: a system wired on each ledger store backend
"""

import random

import pytest

from banking_backend.config import BankingConfig
from banking_backend.generator import RandomGenerator, SecureRandomGenerator
from banking_backend.storage import InMemoryLedgerStore, SQLiteLedgerStore
from banking_backend.system import BankingSystem


class ScriptedGenerator(RandomGenerator):
    """Replays queued IBANs before falling back to a seeded generator"""

    def __init__(self, ibans=None):
        self.ibans = list(ibans or [])
        self._fallback = SecureRandomGenerator("UA", "123456", rng=random.Random(42))

    def generate_iban(self) -> str:
        if self.ibans:
            return self.ibans.pop(0)
        return self._fallback.generate_iban()

    def generate_card_number(self) -> str:
        return self._fallback.generate_card_number()

    def generate_cvv(self) -> str:
        return self._fallback.generate_cvv()


def make_store(kind):
    if kind == "memory":
        return InMemoryLedgerStore()
    return SQLiteLedgerStore(":memory:")


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    store = make_store(request.param)
    yield store
    store.close()


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def system(store, generator):
    config = BankingConfig(database_url="memory://", enable_audit_logging=False)
    return BankingSystem(config=config, store=store, generator=generator)
