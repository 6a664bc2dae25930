"""
Shared pytest fixtures for the OpenLedger test suite.
"""

import pytest

from openledger_core.asset_service import FungibleAssetService, NonFungibleAssetService
from openledger_core.ledger import InMemoryLedger
from openledger_core.wallet import Wallet

ORG = "org-1"

# PBKDF2 rounds for fixture wallets; the production default is far slower
FAST_ITERATIONS = 1_000


class FixedClock:
    """Deterministic clock for ledger timestamps."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


@pytest.fixture(scope="session")
def admin_wallet():
    """Deterministic wallet for the organization admin."""
    return Wallet.from_seed("admin-fixture-seed", FAST_ITERATIONS)


@pytest.fixture(scope="session")
def alice_wallet():
    """Deterministic wallet for Alice."""
    return Wallet.from_seed("alice-fixture-seed", FAST_ITERATIONS)


@pytest.fixture(scope="session")
def bob_wallet():
    """Deterministic wallet for Bob."""
    return Wallet.from_seed("bob-fixture-seed", FAST_ITERATIONS)


@pytest.fixture(scope="session")
def carol_wallet():
    """Deterministic wallet for Carol."""
    return Wallet.from_seed("carol-fixture-seed", FAST_ITERATIONS)


@pytest.fixture
def ledger(admin_wallet, alice_wallet, bob_wallet, carol_wallet):
    """Fresh ledger: one organization, its admin, three registered users."""
    lg = InMemoryLedger(clock=FixedClock())
    lg.auth.create_org(ORG, admins=[admin_wallet.address])
    for w in (alice_wallet, bob_wallet, carol_wallet):
        lg.auth.register_account(w.address)
    return lg


@pytest.fixture
def nonces(ledger):
    return ledger.auth.nonces


@pytest.fixture
def fungible(ledger):
    """FungibleAssetService bound to a freshly deployed contract."""
    contract = ledger.deploy_fungible(ORG)
    return FungibleAssetService(ledger, contract, ledger.auth.nonces)


@pytest.fixture
def funded(fungible, admin_wallet, alice_wallet, bob_wallet, carol_wallet):
    """Fungible contract with open accounts; Alice holds 500, Bob 100."""
    for w in (alice_wallet, bob_wallet, carol_wallet):
        fungible.open_account(w, w.address).unwrap()
    fungible.deposit(admin_wallet, None, alice_wallet.address, 500).unwrap()
    fungible.deposit(admin_wallet, None, bob_wallet.address, 100).unwrap()
    return fungible


@pytest.fixture
def notes(ledger, alice_wallet, bob_wallet, carol_wallet):
    """NonFungibleAssetService with open accounts."""
    contract = ledger.deploy_non_fungible(ORG)
    svc = NonFungibleAssetService(ledger, contract, ledger.auth.nonces)
    for w in (alice_wallet, bob_wallet, carol_wallet):
        svc.open_account(w, w.address).unwrap()
    return svc
