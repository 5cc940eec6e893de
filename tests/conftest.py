"""
Shared fixtures.

Range proofs are run at 8 bits (amounts up to 255) and randomness comes
from a seeded RNG so every run builds the same blindings. One engine per
test: two engines with the same seed would produce identical commitments.
"""

import pytest

from privutxo.core.config import EngineConfig
from privutxo.core.engine import CryptoEngine
from privutxo.core.randomness import SeededRng
from privutxo.core.service import PrivateUTXOService
from privutxo.core.signer import LocalSigner
from privutxo.core.storage import InMemoryUTXORepository
from privutxo.core.verifier import LocalVerifier


TOKEN = "0x" + "11" * 20
OTHER_TOKEN = "0x" + "22" * 20


def _signer(n: int) -> LocalSigner:
    return LocalSigner.from_private_key(n.to_bytes(32, "big"))


# =============================================================================
# Engine
# =============================================================================


@pytest.fixture
def config():
    """Small range proofs for fast tests."""
    return EngineConfig(range_proof_bits=8)


@pytest.fixture
def engine(config):
    """Deterministic crypto engine."""
    return CryptoEngine(rng=SeededRng(7), config=config)


@pytest.fixture
def verifier(engine):
    """In-memory reference verifier sharing the test engine."""
    return LocalVerifier(engine=engine)


@pytest.fixture
def repository():
    """Shared UTXO repository (every principal's service writes here)."""
    return InMemoryUTXORepository()


# =============================================================================
# Principals
# =============================================================================


@pytest.fixture
def alice():
    return _signer(0xA11CE)


@pytest.fixture
def bob():
    return _signer(0xB0B)


@pytest.fixture
def carol():
    return _signer(0xCA201)


@pytest.fixture
def alice_service(alice, verifier, repository, engine):
    return PrivateUTXOService(alice, verifier, repository, engine=engine)


@pytest.fixture
def bob_service(bob, verifier, repository, engine):
    return PrivateUTXOService(bob, verifier, repository, engine=engine)


@pytest.fixture
def funded(alice_service):
    """Alice's service with one confirmed 100-unit deposit."""
    result = alice_service.deposit(TOKEN, 100)
    assert result.success, result.message
    return alice_service, result.utxos[0]


@pytest.fixture
def token():
    return TOKEN


@pytest.fixture
def other_token():
    return OTHER_TOKEN
