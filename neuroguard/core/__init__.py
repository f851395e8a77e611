"""
NEUROGUARD - Core

Configuration, horloge injectable et primitives cryptographiques.
"""

from .interfaces import (
    IClock,
    IConfigLoader,
    ICryptoProvider,
    GuardConfig,
    IdentityProvider,
    FallbackPolicy,
    StoreBackend,
    SupabaseSettings,
    LocalUserSettings,
    IdentitySettings,
    StoreSettings,
    AuditSettings,
    LoggingSettings,
)
from .clock import SystemClock, ManualClock
from .crypto_provider import CryptoProvider, CryptoProviderError
from .config_loader import ConfigLoader, ConfigIntegrityError

__all__ = [
    # Interfaces
    "IClock",
    "IConfigLoader",
    "ICryptoProvider",
    # Config models
    "GuardConfig",
    "IdentityProvider",
    "FallbackPolicy",
    "StoreBackend",
    "SupabaseSettings",
    "LocalUserSettings",
    "IdentitySettings",
    "StoreSettings",
    "AuditSettings",
    "LoggingSettings",
    # Implementations
    "SystemClock",
    "ManualClock",
    "CryptoProvider",
    "ConfigLoader",
    # Exceptions
    "CryptoProviderError",
    "ConfigIntegrityError",
]
