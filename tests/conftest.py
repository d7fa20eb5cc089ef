"""Shared test fixtures for passkey-auth.

Every fixture builds fresh state, so orchestrators never share users or
challenges across tests.
"""

import pytest

from passkey_auth.challenges import InMemoryChallengeLedger
from passkey_auth.dal import InMemoryCredentialRepository
from passkey_auth.orchestrator import CeremonyOrchestrator
from passkey_auth.settings import Settings
from tests.helpers.settings import FakeClock, make_test_settings
from tests.mocks import FakeVerifier

# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with safe defaults."""
    return make_test_settings()


@pytest.fixture
def mock_settings(test_settings: Settings, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Mock get_settings() to return test settings."""
    from passkey_auth import settings

    monkeypatch.setattr(settings, "get_settings", lambda: test_settings)
    return test_settings


# =============================================================================
# CEREMONY COLLABORATORS
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Manually advanced clock for challenge expiry."""
    return FakeClock()


@pytest.fixture
def ledger(clock: FakeClock, test_settings: Settings) -> InMemoryChallengeLedger:
    """Challenge ledger on the fake clock."""
    return InMemoryChallengeLedger(default_ttl_ms=test_settings.challenge_ttl_ms, clock=clock)


@pytest.fixture
def repository() -> InMemoryCredentialRepository:
    """Empty in-memory repository."""
    return InMemoryCredentialRepository()


@pytest.fixture
def verifier() -> FakeVerifier:
    """Verifier that approves by default."""
    return FakeVerifier()


@pytest.fixture
def orchestrator(
    test_settings: Settings,
    repository: InMemoryCredentialRepository,
    ledger: InMemoryChallengeLedger,
    verifier: FakeVerifier,
) -> CeremonyOrchestrator:
    """Orchestrator wired to fresh in-memory collaborators."""
    return CeremonyOrchestrator(
        settings=test_settings,
        repository=repository,
        ledger=ledger,
        verifier=verifier,
    )
