"""
NEUROGUARD - Authentication & Authorization

Garde d'authentification (verrouillage, sessions), vérificateurs
d'identité (table locale, Supabase) et autorisation par rôle.
"""

from .interfaces import (
    ICredentialVerifier,
    IRemoteSignOut,
    IPasswordResetter,
    IAccountProvisioner,
    Role,
    CredentialRecord,
    Principal,
    Session,
    LoginAttempt,
    LoginResult,
    normalize_key,
)
from .errors import (
    AuthError,
    AccountLockedError,
    InvalidCredentialsError,
    VerifierUnavailableError,
    SessionExpiredError,
    MalformedSessionError,
    PermissionDeniedError,
    AccessDeniedError,
    UnsupportedOperationError,
)
from .local_verifier import LocalCredentialVerifier
from .supabase_verifier import SupabaseCredentialVerifier
from .permission_checker import PermissionChecker
from .guard import AuthGuard, SessionState

__all__ = [
    # Interfaces
    "ICredentialVerifier",
    "IRemoteSignOut",
    "IPasswordResetter",
    "IAccountProvisioner",
    # Data classes
    "Role",
    "CredentialRecord",
    "Principal",
    "Session",
    "LoginAttempt",
    "LoginResult",
    "SessionState",
    "normalize_key",
    # Implementations
    "LocalCredentialVerifier",
    "SupabaseCredentialVerifier",
    "PermissionChecker",
    "AuthGuard",
    # Exceptions
    "AuthError",
    "AccountLockedError",
    "InvalidCredentialsError",
    "VerifierUnavailableError",
    "SessionExpiredError",
    "MalformedSessionError",
    "PermissionDeniedError",
    "AccessDeniedError",
    "UnsupportedOperationError",
]
