"""
Tests unitaires AuthGuard - connexion, verrouillage, repli.
"""

import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from neuroguard.audit.interfaces import IAuditSink, SecurityEventType
from neuroguard.auth.errors import AccountLockedError, InvalidCredentialsError
from neuroguard.auth.guard import AuthGuard, SessionState
from neuroguard.auth.interfaces import ICredentialVerifier, LoginResult, Principal, Role
from neuroguard.core.interfaces import FallbackPolicy
from neuroguard.logging.interfaces import LogLevel


# ══════════════════════════════════════════════════════════════════════════════
# DOUBLES
# ══════════════════════════════════════════════════════════════════════════════


class GatedVerifier(ICredentialVerifier):
    """Vérificateur bloqué sur un événement, refuse ensuite."""

    provider_name = "gated"

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.gate = asyncio.Event()
        self.active = 0
        self.max_active = 0

    async def verify(self, key: str, secret: str) -> Principal:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            await self.gate.wait()
        finally:
            self.active -= 1
        raise InvalidCredentialsError(reason="gated_rejected")


def failing_audit_sink() -> Mock:
    """Puits d'audit toujours en erreur."""
    sink = Mock(spec=IAuditSink)
    sink.record = AsyncMock(side_effect=RuntimeError("audit backend down"))
    return sink


async def fail_times(guard: AuthGuard, key: str, times: int) -> LoginResult:
    result = None
    for _ in range(times):
        result = await guard.attempt_login(key, "wrongpass")
    return result


# ══════════════════════════════════════════════════════════════════════════════
# SUCCÈS
# ══════════════════════════════════════════════════════════════════════════════


class TestLoginSuccess:
    """Connexion réussie."""

    @pytest.mark.asyncio
    async def test_coordinator_login_against_local_table(self, guard):
        """Le coordinateur se connecte et obtient toutes les permissions."""
        result = await guard.attempt_login("coord@clinica.com", "coord123")

        assert result.ok is True
        session = result.unwrap()
        assert session.role is Role.COORDINATOR
        assert session.display_name == "Dr. Ana Silva"
        assert session.provider == "local"
        assert guard.has_permission("anything") is True

    @pytest.mark.asyncio
    async def test_key_is_trimmed_and_lowercased(self, guard):
        """L'identifiant est normalisé avant la vérification."""
        result = await guard.attempt_login("  COORD@Clinica.COM ", "coord123")

        assert result.ok is True
        assert result.session.principal_id == "coord@clinica.com"

    @pytest.mark.asyncio
    async def test_session_persisted_in_store(self, guard, store, clock):
        """La session est écrite dans le stockage."""
        await guard.attempt_login("func@clinica.com", "func123")

        persisted = json.loads(store.get(AuthGuard.SESSION_KEY))
        assert persisted["principal_id"] == "func@clinica.com"
        assert persisted["role"] == "staff"
        assert persisted["issued_at"] == clock.now().isoformat()

    @pytest.mark.asyncio
    async def test_success_audited_without_secret(self, guard, audit, log_lines):
        """login_success est journalisé, le secret n'apparaît nulle part."""
        await guard.attempt_login("coord@clinica.com", "coord123")

        events = audit.events(SecurityEventType.LOGIN_SUCCESS)
        assert len(events) == 1
        assert events[0].principal == "coord@clinica.com"
        assert events[0].payload == {"provider": "local", "role": "coordinator"}
        assert "coord123" not in json.dumps([e.to_dict() for e in audit.events()])
        assert all("coord123" not in line for line in log_lines)

    @pytest.mark.asyncio
    async def test_state_authenticated_after_login(self, guard):
        assert guard.state is SessionState.ANONYMOUS

        await guard.attempt_login("coord@clinica.com", "coord123")

        assert guard.state is SessionState.AUTHENTICATED


# ══════════════════════════════════════════════════════════════════════════════
# ÉCHECS
# ══════════════════════════════════════════════════════════════════════════════


class TestLoginFailure:
    """Identifiants refusés."""

    @pytest.mark.asyncio
    async def test_wrong_password_reports_remaining_attempts(self, guard):
        result = await guard.attempt_login("func@clinica.com", "wrongpass")

        assert result.ok is False
        assert isinstance(result.error, InvalidCredentialsError)
        assert result.error.remaining_attempts == 4
        assert result.error.reason == "wrong_secret"

    @pytest.mark.asyncio
    async def test_unknown_account_is_counted(self, guard):
        await guard.attempt_login("nobody@clinica.com", "x")
        result = await guard.attempt_login("nobody@clinica.com", "x")

        assert result.error.remaining_attempts == 3
        assert result.error.reason == "unknown_account"

    @pytest.mark.asyncio
    async def test_inactive_account_rejected(self, guard):
        """Un compte désactivé ne se connecte pas, même avec le bon secret."""
        result = await guard.attempt_login("ancien@clinica.com", "old123")

        assert result.ok is False
        assert result.error.reason == "inactive_account"

    @pytest.mark.asyncio
    async def test_empty_identifier_not_counted(self, guard, store):
        result = await guard.attempt_login("   ", "x")

        assert isinstance(result.error, InvalidCredentialsError)
        assert result.error.reason == "empty_identifier"
        assert store.get(AuthGuard.ATTEMPTS_KEY) is None

    @pytest.mark.asyncio
    async def test_unwrap_raises_error(self, guard):
        result = await guard.attempt_login("func@clinica.com", "wrongpass")

        with pytest.raises(InvalidCredentialsError):
            result.unwrap()

    @pytest.mark.asyncio
    async def test_failure_audited(self, guard, audit):
        await guard.attempt_login("func@clinica.com", "wrongpass")

        events = audit.events(SecurityEventType.LOGIN_FAILED, principal="func@clinica.com")
        assert len(events) == 1
        assert events[0].payload["attempts"] == 1
        assert events[0].payload["remaining_attempts"] == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        ["{broken", "[]", json.dumps({"func@clinica.com": {"count": "five", "last_attempt_at": "2025-01-01T09:00:00+00:00"}})],
    )
    async def test_unreadable_counter_restarts(self, guard, store, logger, raw):
        """Un compteur illisible est ignoré et signalé."""
        store.set(AuthGuard.ATTEMPTS_KEY, raw)

        result = await guard.attempt_login("func@clinica.com", "wrongpass")

        assert result.error.remaining_attempts == 4
        assert logger.get_entries_by_level(LogLevel.ERROR)

    @pytest.mark.asyncio
    async def test_no_session_after_failure(self, guard, store):
        await guard.attempt_login("func@clinica.com", "wrongpass")

        assert store.get(AuthGuard.SESSION_KEY) is None
        assert guard.get_current_principal() is None


# ══════════════════════════════════════════════════════════════════════════════
# VERROUILLAGE
# ══════════════════════════════════════════════════════════════════════════════


class TestLockout:
    """5 échecs = verrouillage 15 minutes."""

    @pytest.mark.asyncio
    async def test_fifth_failure_reports_zero_remaining(self, guard):
        result = await fail_times(guard, "func@clinica.com", 5)

        assert result.error.remaining_attempts == 0

    @pytest.mark.asyncio
    async def test_correct_password_still_locked(self, guard):
        """5 échecs puis bon mot de passe: toujours verrouillé."""
        await fail_times(guard, "func@clinica.com", 5)

        result = await guard.attempt_login("func@clinica.com", "func123")

        assert isinstance(result.error, AccountLockedError)
        assert result.error.remaining_seconds == 15 * 60

    @pytest.mark.asyncio
    async def test_locked_attempt_skips_verifier(self, guard_factory, stub_verifier):
        """La 6e tentative n'invoque pas le vérificateur."""
        verifier = stub_verifier(mode="reject")
        guard = guard_factory(verifier)

        await fail_times(guard, "func@clinica.com", 5)
        assert len(verifier.calls) == 5

        result = await guard.attempt_login("func@clinica.com", "func123")

        assert isinstance(result.error, AccountLockedError)
        assert len(verifier.calls) == 5

    @pytest.mark.asyncio
    async def test_still_locked_one_millisecond_before_window_end(self, guard, clock):
        await fail_times(guard, "func@clinica.com", 5)

        clock.advance(milliseconds=15 * 60 * 1000 - 1)
        result = await guard.attempt_login("func@clinica.com", "func123")

        assert isinstance(result.error, AccountLockedError)
        assert result.error.remaining_seconds == 1

    @pytest.mark.asyncio
    async def test_reset_exactly_at_window_end(self, guard, clock):
        """À 15 min pile, le compteur est remis à zéro."""
        await fail_times(guard, "func@clinica.com", 5)

        clock.advance(milliseconds=15 * 60 * 1000)
        result = await guard.attempt_login("func@clinica.com", "func123")

        assert result.ok is True

    @pytest.mark.asyncio
    async def test_window_end_is_full_reset(self, guard, clock):
        """Après la fenêtre, un nouvel échec repart de 1."""
        await fail_times(guard, "func@clinica.com", 3)

        clock.advance(minutes=15)
        result = await guard.attempt_login("func@clinica.com", "wrongpass")

        assert result.error.remaining_attempts == 4

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, guard):
        await fail_times(guard, "func@clinica.com", 3)
        assert (await guard.attempt_login("func@clinica.com", "func123")).ok

        result = await guard.attempt_login("func@clinica.com", "wrongpass")

        assert result.error.remaining_attempts == 4

    @pytest.mark.asyncio
    async def test_counter_keyed_by_normalized_key(self, guard):
        await guard.attempt_login("FUNC@clinica.com", "wrongpass")
        await guard.attempt_login(" func@clinica.com", "wrongpass")

        assert guard.get_remaining_attempts("func@clinica.com") == 3

    @pytest.mark.asyncio
    async def test_accounts_are_independent(self, guard):
        await fail_times(guard, "func@clinica.com", 5)

        result = await guard.attempt_login("intern@clinica.com", "intern123")

        assert result.ok is True

    @pytest.mark.asyncio
    async def test_locked_attempt_does_not_extend_window(self, guard, clock):
        """Une tentative refusée pour verrouillage ne relance pas la fenêtre."""
        await fail_times(guard, "func@clinica.com", 5)
        clock.advance(minutes=10)
        await guard.attempt_login("func@clinica.com", "func123")

        clock.advance(minutes=5)
        result = await guard.attempt_login("func@clinica.com", "func123")

        assert result.ok is True

    @pytest.mark.asyncio
    async def test_locked_attempt_audited(self, guard, audit):
        await fail_times(guard, "func@clinica.com", 5)
        await guard.attempt_login("func@clinica.com", "func123")

        events = audit.events(SecurityEventType.LOGIN_LOCKED)
        assert len(events) == 1
        assert events[0].payload["remaining_seconds"] == 900

    @pytest.mark.asyncio
    async def test_lock_remaining_view(self, guard, clock):
        assert guard.get_lock_remaining("func@clinica.com") is None

        await fail_times(guard, "func@clinica.com", 5)
        clock.advance(minutes=5)

        assert guard.get_lock_remaining("func@clinica.com") == timedelta(minutes=10)
        assert guard.get_remaining_attempts("func@clinica.com") == 0

    @pytest.mark.asyncio
    async def test_custom_thresholds(self, guard_factory, local_verifier, clock):
        guard = guard_factory(local_verifier, max_failed_attempts=3, lockout_window=timedelta(minutes=1))

        await fail_times(guard, "func@clinica.com", 3)
        assert isinstance((await guard.attempt_login("func@clinica.com", "func123")).error, AccountLockedError)

        clock.advance(minutes=1)
        assert (await guard.attempt_login("func@clinica.com", "func123")).ok


# ══════════════════════════════════════════════════════════════════════════════
# REPLI
# ══════════════════════════════════════════════════════════════════════════════


class TestFallback:
    """Repli vers la table locale uniquement si le principal est indisponible."""

    @pytest.mark.asyncio
    async def test_fallback_on_unavailable(self, guard_factory, stub_verifier, local_verifier, audit):
        primary = stub_verifier(provider_name="supabase", mode="unavailable")
        guard = guard_factory(primary, fallback=local_verifier)

        result = await guard.attempt_login("coord@clinica.com", "coord123")

        assert result.ok is True
        assert result.session.provider == "local"
        events = audit.events(SecurityEventType.VERIFIER_FALLBACK)
        assert len(events) == 1
        assert events[0].payload == {"from": "supabase", "to": "local"}

    @pytest.mark.asyncio
    async def test_definitive_rejection_not_replayed(self, guard_factory, stub_verifier):
        """Un refus définitif du principal ne consulte jamais le repli."""
        primary = stub_verifier(provider_name="supabase", mode="reject")
        fallback = stub_verifier(provider_name="local", mode="accept")
        guard = guard_factory(primary, fallback=fallback)

        result = await guard.attempt_login("coord@clinica.com", "coord123")

        assert isinstance(result.error, InvalidCredentialsError)
        assert fallback.calls == []

    @pytest.mark.asyncio
    async def test_policy_never_disables_fallback(self, guard_factory, stub_verifier):
        primary = stub_verifier(provider_name="supabase", mode="unavailable")
        fallback = stub_verifier(provider_name="local", mode="accept")
        guard = guard_factory(primary, fallback=fallback, fallback_policy=FallbackPolicy.NEVER)

        result = await guard.attempt_login("coord@clinica.com", "coord123")

        assert result.error.reason == "verifier_unavailable"
        assert result.error.remaining_attempts == 4
        assert fallback.calls == []

    @pytest.mark.asyncio
    async def test_both_unavailable_collapses_to_invalid(self, guard_factory, stub_verifier):
        primary = stub_verifier(provider_name="supabase", mode="unavailable")
        fallback = stub_verifier(provider_name="local", mode="unavailable")
        guard = guard_factory(primary, fallback=fallback)

        result = await guard.attempt_login("coord@clinica.com", "coord123")

        assert isinstance(result.error, InvalidCredentialsError)
        assert result.error.reason == "verifier_unavailable"
        assert len(primary.calls) == 1
        assert len(fallback.calls) == 1

    @pytest.mark.asyncio
    async def test_lockout_not_bypassed_by_unavailable_primary(self, guard_factory, stub_verifier):
        primary = stub_verifier(provider_name="supabase", mode="reject")
        fallback = stub_verifier(provider_name="local", mode="accept")
        guard = guard_factory(primary, fallback=fallback)
        await fail_times(guard, "func@clinica.com", 5)

        primary.mode = "unavailable"
        result = await guard.attempt_login("func@clinica.com", "func123")

        assert isinstance(result.error, AccountLockedError)
        assert len(primary.calls) == 5
        assert fallback.calls == []


# ══════════════════════════════════════════════════════════════════════════════
# AUDIT EN ÉCHEC
# ══════════════════════════════════════════════════════════════════════════════


class TestAuditSinkFailure:
    """Une erreur du journal ne bloque jamais la connexion."""

    @pytest.mark.asyncio
    async def test_login_succeeds_when_audit_fails(self, guard_factory, local_verifier, logger):
        sink = failing_audit_sink()
        guard = guard_factory(local_verifier, audit=sink)

        result = await guard.attempt_login("coord@clinica.com", "coord123")

        assert result.ok is True
        assert sink.record.await_count == 1
        errors = [e for e in logger.get_entries() if e.message == "Journal de sécurité indisponible"]
        assert len(errors) == 1
        assert errors[0].extra["event"] == "login_success"

    @pytest.mark.asyncio
    async def test_failure_counted_when_audit_fails(self, guard_factory, local_verifier):
        guard = guard_factory(local_verifier, audit=failing_audit_sink())

        result = await guard.attempt_login("func@clinica.com", "wrongpass")

        assert result.error.remaining_attempts == 4


# ══════════════════════════════════════════════════════════════════════════════
# CONCURRENCE
# ══════════════════════════════════════════════════════════════════════════════


class TestConcurrency:
    """Une seule tentative à la fois, écriture maintenue malgré l'annulation."""

    @pytest.mark.asyncio
    async def test_authenticating_state_while_in_flight(self, guard_factory):
        verifier = GatedVerifier()
        guard = guard_factory(verifier)

        task = asyncio.create_task(guard.attempt_login("func@clinica.com", "x"))
        await asyncio.wait_for(verifier.started.wait(), timeout=1)

        assert guard.state is SessionState.AUTHENTICATING

        verifier.gate.set()
        await task
        assert guard.state is SessionState.ANONYMOUS

    @pytest.mark.asyncio
    async def test_attempts_are_serialized(self, guard_factory):
        verifier = GatedVerifier()
        guard = guard_factory(verifier)
        verifier.gate.set()

        results = await asyncio.gather(
            guard.attempt_login("func@clinica.com", "a"),
            guard.attempt_login("func@clinica.com", "b"),
        )

        assert verifier.max_active == 1
        assert sorted(r.error.remaining_attempts for r in results) == [3, 4]

    @pytest.mark.asyncio
    async def test_cancelled_attempt_still_counted(self, guard_factory):
        """Annuler l'appelant n'empêche pas l'écriture du compteur."""
        verifier = GatedVerifier()
        guard = guard_factory(verifier)

        task = asyncio.create_task(guard.attempt_login("func@clinica.com", "x"))
        await asyncio.wait_for(verifier.started.wait(), timeout=1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        verifier.gate.set()
        # La tentative suivante attend la fin de la précédente
        result = await guard.attempt_login("func@clinica.com", "y")

        assert result.error.remaining_attempts == 3
