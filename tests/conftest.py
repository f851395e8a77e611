"""
NEUROGUARD - Pytest Configuration
Fixtures partagées pour tous les tests.
"""

from typing import List, Optional

import pytest

from neuroguard.audit.audit_trail import AuditTrail
from neuroguard.auth.errors import InvalidCredentialsError, VerifierUnavailableError
from neuroguard.auth.guard import AuthGuard
from neuroguard.auth.interfaces import CredentialRecord, ICredentialVerifier, Principal, Role
from neuroguard.auth.local_verifier import LocalCredentialVerifier
from neuroguard.core.clock import ManualClock
from neuroguard.core.crypto_provider import CryptoProvider
from neuroguard.logging.interfaces import LogConfig, LogLevel
from neuroguard.logging.structured_logger import StructuredLogger
from neuroguard.storage.memory_store import MemorySessionStore


class StubVerifier(ICredentialVerifier):
    """
    Vérificateur programmable.

    mode: "accept", "reject" ou "unavailable"
    """

    def __init__(self, provider_name: str = "stub", mode: str = "accept", role: Role = Role.STAFF):
        self.provider_name = provider_name
        self.mode = mode
        self.role = role
        self.calls: List[str] = []

    async def verify(self, key: str, secret: str) -> Principal:
        self.calls.append(key)
        if self.mode == "unavailable":
            raise VerifierUnavailableError("stub down", provider=self.provider_name)
        if self.mode == "reject":
            raise InvalidCredentialsError(reason="stub_rejected")
        return Principal(
            principal_id=f"{self.provider_name}-{key}",
            key=key,
            display_name=key,
            role=self.role,
            permissions=("schedule",),
            provider=self.provider_name,
            access_token="stub-token" if self.provider_name != "local" else None,
        )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def crypto() -> CryptoProvider:
    """Coût scrypt réduit pour des tests rapides."""
    return CryptoProvider(n=2**4)


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def log_lines() -> List[str]:
    return []


@pytest.fixture
def logger(clock: ManualClock, log_lines: List[str]) -> StructuredLogger:
    return StructuredLogger(
        "neuroguard.test",
        config=LogConfig(min_level=LogLevel.DEBUG),
        output_handler=log_lines.append,
        clock=clock,
    )


@pytest.fixture
def local_records(crypto: CryptoProvider) -> List[CredentialRecord]:
    return [
        CredentialRecord(
            key="coord@clinica.com",
            secret_hash=crypto.hash_secret("coord123"),
            display_name="Dr. Ana Silva",
            role=Role.COORDINATOR,
            permissions=("all",),
        ),
        CredentialRecord(
            key="func@clinica.com",
            secret_hash=crypto.hash_secret("func123"),
            display_name="Dra. Maria Santos",
            role=Role.STAFF,
            permissions=("clients", "schedule", "reports"),
        ),
        CredentialRecord(
            key="intern@clinica.com",
            secret_hash=crypto.hash_secret("intern123"),
            display_name="Estagiário Junior",
            role=Role.INTERN,
            permissions=("schedule", "my_clients"),
        ),
        CredentialRecord(
            key="ancien@clinica.com",
            secret_hash=crypto.hash_secret("old123"),
            display_name="Ancien Membre",
            role=Role.STAFF,
            permissions=("clients",),
            active=False,
        ),
    ]


@pytest.fixture
def local_verifier(local_records: List[CredentialRecord], crypto: CryptoProvider) -> LocalCredentialVerifier:
    return LocalCredentialVerifier(local_records, crypto)


@pytest.fixture
def audit(crypto: CryptoProvider, clock: ManualClock, store: MemorySessionStore, logger: StructuredLogger) -> AuditTrail:
    return AuditTrail(crypto, clock, store=store, logger=logger)


@pytest.fixture
def guard(
    local_verifier: LocalCredentialVerifier,
    store: MemorySessionStore,
    clock: ManualClock,
    audit: AuditTrail,
    logger: StructuredLogger,
) -> AuthGuard:
    return AuthGuard(local_verifier, store, clock=clock, audit=audit, logger=logger)


def make_guard(
    primary: ICredentialVerifier,
    store: MemorySessionStore,
    clock: ManualClock,
    audit: Optional[AuditTrail] = None,
    logger: Optional[StructuredLogger] = None,
    **kwargs,
) -> AuthGuard:
    return AuthGuard(primary, store, clock=clock, audit=audit, logger=logger, **kwargs)


@pytest.fixture
def stub_verifier():
    """Fabrique de StubVerifier."""
    return StubVerifier


@pytest.fixture
def guard_factory(store: MemorySessionStore, clock: ManualClock, audit: AuditTrail, logger: StructuredLogger):
    """Construit un AuthGuard sur les fixtures partagées."""

    def _factory(primary: ICredentialVerifier, **kwargs) -> AuthGuard:
        kwargs.setdefault("audit", audit)
        kwargs.setdefault("logger", logger)
        return make_guard(primary, store, clock, **kwargs)

    return _factory
