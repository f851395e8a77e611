"""
NEUROGUARD - Factory

Assemble un AuthGuard depuis la configuration: un seul vérificateur
principal sélectionné par identity.provider, la table locale en repli
lorsque le principal est distant.
"""

from typing import Callable, Optional

import httpx

from .audit.audit_trail import AuditTrail
from .auth.guard import AuthGuard
from .auth.interfaces import ICredentialVerifier
from .auth.local_verifier import LocalCredentialVerifier
from .auth.supabase_verifier import SupabaseCredentialVerifier
from .core.clock import SystemClock
from .core.config_loader import ConfigLoader
from .core.crypto_provider import CryptoProvider
from .core.interfaces import GuardConfig, IClock, ICryptoProvider, IdentityProvider, StoreBackend
from .logging.structured_logger import StructuredLogger
from .storage.file_store import JsonFileSessionStore
from .storage.interfaces import ISessionStore
from .storage.memory_store import MemorySessionStore


def build_guard(
    config: GuardConfig,
    clock: Optional[IClock] = None,
    store: Optional[ISessionStore] = None,
    crypto_provider: Optional[ICryptoProvider] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    output_handler: Optional[Callable[[str], None]] = None,
) -> AuthGuard:
    """
    Construit le garde et ses collaborateurs.

    Args:
        config: Configuration validée
        clock: Horloge (défaut: système)
        store: Stockage imposé (sinon selon config.store)
        crypto_provider: Hachage (défaut: CryptoProvider scrypt)
        http_client: Client httpx partagé pour Supabase
        output_handler: Destination des logs JSON

    Returns:
        AuthGuard prêt à l'emploi
    """
    clock = clock or SystemClock()
    crypto_provider = crypto_provider or CryptoProvider()
    logger = StructuredLogger.from_level_name(
        "neuroguard",
        config.logging.min_level,
        output_handler=output_handler,
        clock=clock,
    )

    if store is None:
        if config.store.backend == StoreBackend.FILE:
            store = JsonFileSessionStore(config.store.path, logger=logger)
        else:
            store = MemorySessionStore()

    audit = AuditTrail(
        crypto_provider,
        clock,
        store=store if config.audit.persist else None,
        max_entries=config.audit.max_entries,
        logger=logger,
    )

    local = LocalCredentialVerifier.from_settings(config.local_users, crypto_provider)

    primary: ICredentialVerifier
    fallback: Optional[ICredentialVerifier] = None
    if config.identity.provider == IdentityProvider.SUPABASE:
        primary = SupabaseCredentialVerifier(config.identity.supabase, client=http_client, logger=logger)
        if config.local_users:
            fallback = local
    else:
        primary = local

    logger.info(
        "Garde d'authentification initialisé",
        provider=primary.provider_name,
        fallback=fallback.provider_name if fallback else None,
        local_accounts=len(local.keys()),
    )

    return AuthGuard(
        primary,
        store,
        clock=clock,
        audit=audit,
        logger=logger,
        fallback=fallback,
        fallback_policy=config.identity.fallback,
        max_failed_attempts=config.max_failed_attempts,
        lockout_window=config.lockout_window,
        session_timeout=config.session_timeout,
    )


def build_guard_from_file(path: str, **kwargs) -> AuthGuard:
    """
    Charge la configuration YAML puis construit le garde.

    Raises:
        ConfigIntegrityError: Configuration absente ou invalide
    """
    return build_guard(ConfigLoader().load(path), **kwargs)
