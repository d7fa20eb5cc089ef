"""Unit tests for the authentication ceremony.

Covers the named-user and discoverable flows, challenge gating and
signature counter reconciliation.
"""

import pytest

from passkey_auth.orchestrator import authentication_key, ceremony_key, registration_key
from tests.mocks import authentication_response, make_credential


@pytest.fixture
async def registered_user(repository):
    """User u1 with credential c1 (counter 5)."""
    await repository.create_user("u1", "alice", "Alice A")
    await repository.add_credential("u1", make_credential("c1", sign_count=5))
    return await repository.get_user_by_id("u1")


@pytest.mark.asyncio
class TestBeginAuthentication:
    """Tests for CeremonyOrchestrator.begin_authentication."""

    async def test_known_user_gets_allow_list(self, orchestrator, registered_user):
        ceremony = await orchestrator.begin_authentication("u1")

        assert [c["id"] for c in ceremony.options["allowCredentials"]] == ["c1"]
        assert ceremony.ceremony_id is None

    async def test_known_user_challenge_under_user_key(
        self, orchestrator, ledger, registered_user
    ):
        ceremony = await orchestrator.begin_authentication("u1")

        assert ledger.read(authentication_key("u1")) == ceremony.options["challenge"]

    async def test_unknown_user_gets_no_allow_list(self, orchestrator, ledger):
        ceremony = await orchestrator.begin_authentication("ghost")

        assert "allowCredentials" not in ceremony.options
        assert ledger.read(authentication_key("ghost")) == ceremony.options["challenge"]

    async def test_user_without_credentials_gets_no_allow_list(self, orchestrator, repository):
        await repository.create_user("u1", "alice", "Alice A")

        ceremony = await orchestrator.begin_authentication("u1")

        assert "allowCredentials" not in ceremony.options

    async def test_discoverable_flow_issues_ceremony_id(self, orchestrator, ledger):
        ceremony = await orchestrator.begin_authentication()

        assert "allowCredentials" not in ceremony.options
        assert ceremony.ceremony_id
        assert ledger.read(ceremony_key(ceremony.ceremony_id)) == ceremony.options["challenge"]

    async def test_discoverable_ceremony_ids_are_unique(self, orchestrator):
        first = await orchestrator.begin_authentication()
        second = await orchestrator.begin_authentication()

        assert first.ceremony_id != second.ceremony_id

    async def test_options_carry_configuration(self, orchestrator, test_settings):
        ceremony = await orchestrator.begin_authentication()

        assert ceremony.options["rpId"] == test_settings.webauthn_rp_id
        assert ceremony.options["timeout"] == test_settings.webauthn_timeout_ms
        assert ceremony.options["userVerification"] == "preferred"


@pytest.mark.asyncio
class TestFinishAuthenticationNamedUser:
    """finish_authentication with a user id."""

    async def test_success_returns_user_and_credential(
        self, orchestrator, verifier, registered_user
    ):
        await orchestrator.begin_authentication("u1")
        verifier.next_sign_count = 6

        result = await orchestrator.finish_authentication(authentication_response("c1"), "u1")

        assert result.verified is True
        assert result.user.id == "u1"
        assert result.credential.id == "c1"
        assert result.credential.sign_count == 6

    async def test_verifier_receives_stored_credential(
        self, orchestrator, verifier, registered_user
    ):
        ceremony = await orchestrator.begin_authentication("u1")

        await orchestrator.finish_authentication(authentication_response("c1"), "u1")

        [call] = verifier.calls_to("verify_authentication")
        assert call["expected_challenge"] == ceremony.options["challenge"]
        assert call["credential"].public_key == b"public-key-c1"
        assert call["credential"].sign_count == 5

    async def test_unknown_user_fails(self, orchestrator, verifier):
        result = await orchestrator.finish_authentication(authentication_response("c1"), "ghost")

        assert result.verified is False
        assert result.error_code == "user_not_found"
        assert verifier.calls_to("verify_authentication") == []

    async def test_foreign_credential_fails(self, orchestrator, repository, registered_user):
        await repository.create_user("u2", "bob", "Bob B")
        await repository.add_credential("u2", make_credential("c2"))
        await orchestrator.begin_authentication("u1")

        result = await orchestrator.finish_authentication(authentication_response("c2"), "u1")

        assert result.verified is False
        assert result.error_code == "credential_not_found"

    async def test_missing_challenge_fails(self, orchestrator, registered_user):
        result = await orchestrator.finish_authentication(authentication_response("c1"), "u1")

        assert result.verified is False
        assert result.error_code == "challenge_expired_or_missing"

    async def test_expired_challenge_fails(
        self, orchestrator, clock, test_settings, registered_user
    ):
        await orchestrator.begin_authentication("u1")
        clock.advance_ms(test_settings.challenge_ttl_ms)

        result = await orchestrator.finish_authentication(authentication_response("c1"), "u1")

        assert result.error_code == "challenge_expired_or_missing"

    async def test_replay_after_success_fails(self, orchestrator, registered_user):
        await orchestrator.begin_authentication("u1")
        response = authentication_response("c1")
        first = await orchestrator.finish_authentication(response, "u1")

        second = await orchestrator.finish_authentication(response, "u1")

        assert first.verified is True
        assert second.verified is False
        assert second.error_code == "challenge_expired_or_missing"

    async def test_rejection_leaves_state_untouched(
        self, orchestrator, verifier, repository, ledger, registered_user
    ):
        await orchestrator.begin_authentication("u1")
        verifier.reject_authentication = True
        verifier.next_sign_count = 9

        result = await orchestrator.finish_authentication(authentication_response("c1"), "u1")

        assert result.verified is False
        assert result.error_code == "authentication_rejected"
        stored = await repository.get_user_by_id("u1")
        assert stored.credentials[0].sign_count == 5
        assert stored.credentials[0].last_used_at is None
        assert ledger.read(authentication_key("u1")) is not None

    async def test_response_without_id_fails(self, orchestrator, registered_user):
        await orchestrator.begin_authentication("u1")

        result = await orchestrator.finish_authentication({"type": "public-key"}, "u1")

        assert result.error_code == "credential_not_found"


@pytest.mark.asyncio
class TestFinishAuthenticationDiscoverable:
    """finish_authentication without a user id."""

    async def test_resolves_user_from_credential_id(self, orchestrator, registered_user):
        ceremony = await orchestrator.begin_authentication()

        result = await orchestrator.finish_authentication(
            authentication_response("c1"), ceremony_id=ceremony.ceremony_id
        )

        assert result.verified is True
        assert result.user.username == "alice"

    async def test_resolution_goes_through_credential_lookup(
        self, orchestrator, repository, registered_user, monkeypatch
    ):
        looked_up = []
        original = repository.find_by_credential_id

        async def _spy(credential_id):
            looked_up.append(credential_id)
            return await original(credential_id)

        monkeypatch.setattr(repository, "find_by_credential_id", _spy)
        ceremony = await orchestrator.begin_authentication()

        await orchestrator.finish_authentication(
            authentication_response("c1"), ceremony_id=ceremony.ceremony_id
        )

        assert looked_up == ["c1"]

    async def test_unknown_credential_fails(self, orchestrator):
        ceremony = await orchestrator.begin_authentication()

        result = await orchestrator.finish_authentication(
            authentication_response("nope"), ceremony_id=ceremony.ceremony_id
        )

        assert result.error_code == "credential_not_found"

    async def test_missing_ceremony_id_fails(self, orchestrator, registered_user):
        await orchestrator.begin_authentication()

        result = await orchestrator.finish_authentication(authentication_response("c1"))

        assert result.error_code == "challenge_expired_or_missing"

    async def test_unknown_ceremony_id_fails(self, orchestrator, registered_user):
        await orchestrator.begin_authentication()

        result = await orchestrator.finish_authentication(
            authentication_response("c1"), ceremony_id="made-up"
        )

        assert result.error_code == "challenge_expired_or_missing"

    async def test_ceremony_id_is_single_use(self, orchestrator, registered_user):
        ceremony = await orchestrator.begin_authentication()
        response = authentication_response("c1")
        await orchestrator.finish_authentication(response, ceremony_id=ceremony.ceremony_id)

        result = await orchestrator.finish_authentication(
            response, ceremony_id=ceremony.ceremony_id
        )

        assert result.error_code == "challenge_expired_or_missing"

    async def test_named_begin_cannot_overwrite_ceremony_challenge(
        self, orchestrator, ledger, registered_user
    ):
        ceremony = await orchestrator.begin_authentication()
        await orchestrator.begin_authentication("ceremony_" + ceremony.ceremony_id)

        assert ledger.read(ceremony_key(ceremony.ceremony_id)) == ceremony.options["challenge"]
        result = await orchestrator.finish_authentication(
            authentication_response("c1", challenge=ceremony.options["challenge"]),
            ceremony_id=ceremony.ceremony_id,
        )
        assert result.verified is True

    @pytest.mark.parametrize("suffix", ["x", "ceremony_x", "auth_x", "reg_x"])
    async def test_keys_are_disjoint(self, suffix):
        keys = {
            registration_key("ceremony_" + suffix),
            authentication_key("ceremony_" + suffix),
            ceremony_key(suffix),
        }
        assert len(keys) == 3


@pytest.mark.asyncio
class TestSignatureCounter:
    """Stored counters only move forward."""

    @pytest.mark.parametrize(
        ("reported", "expected"),
        [
            (5, 5),  # unchanged
            (7, 7),  # advanced
            (0, 5),  # authenticator without counter support
            (3, 5),  # regression is never written
        ],
    )
    async def test_counter_reconciliation(
        self, orchestrator, verifier, repository, registered_user, reported, expected
    ):
        await orchestrator.begin_authentication("u1")
        verifier.next_sign_count = reported

        result = await orchestrator.finish_authentication(authentication_response("c1"), "u1")

        assert result.verified is True
        stored = await repository.get_user_by_id("u1")
        assert stored.credentials[0].sign_count == expected

    async def test_last_used_is_refreshed(self, orchestrator, repository, registered_user):
        await orchestrator.begin_authentication("u1")

        await orchestrator.finish_authentication(authentication_response("c1"), "u1")

        stored = await repository.get_user_by_id("u1")
        assert stored.credentials[0].last_used_at is not None


@pytest.mark.asyncio
class TestEndToEnd:
    """Register, list, authenticate."""

    async def test_register_then_authenticate(self, orchestrator, verifier):
        await orchestrator.begin_registration("u1", "alice", "Alice A")
        verifier.registration_credential_id = "c1"
        verifier.registration_sign_count = 0
        registration = await orchestrator.finish_registration(
            "u1", {"id": "c1", "response": {"transports": ["internal"]}}
        )
        assert registration.verified is True

        credentials = await orchestrator.list_credentials("u1")
        assert [c.id for c in credentials] == ["c1"]

        ceremony = await orchestrator.begin_authentication("u1")
        assert [c["id"] for c in ceremony.options["allowCredentials"]] == ["c1"]

        verifier.next_sign_count = 1
        result = await orchestrator.finish_authentication({"id": "c1"}, "u1")

        assert result.verified is True
        stored = await orchestrator.get_credential("u1", "c1")
        assert stored.sign_count == 1
