"""
NEUROGUARD - Auth Errors

Taxonomie des erreurs d'authentification et d'autorisation.

AccountLockedError et InvalidCredentialsError sont visibles par
l'utilisateur. VerifierUnavailableError reste interne: elle déclenche le
repli et se transforme en InvalidCredentialsError si le repli échoue
aussi. MalformedSessionError est absorbée (retour à l'état anonyme).
"""

from typing import Optional


class AuthError(Exception):
    """Erreur de base du garde d'authentification."""

    pass


class AccountLockedError(AuthError):
    """Compte verrouillé après trop d'échecs consécutifs."""

    def __init__(self, remaining_seconds: int):
        self.remaining_seconds = remaining_seconds
        minutes = max(1, -(-remaining_seconds // 60))
        super().__init__(f"Compte bloqué, réessayer dans {minutes} min")


class InvalidCredentialsError(AuthError):
    """Identifiants refusés."""

    def __init__(self, remaining_attempts: Optional[int] = None, reason: str = "invalid_credentials"):
        self.remaining_attempts = remaining_attempts
        self.reason = reason
        if remaining_attempts is None:
            message = "Identifiants invalides"
        elif remaining_attempts > 0:
            message = f"Identifiants invalides, {remaining_attempts} tentative(s) restante(s)"
        else:
            message = "Identifiants invalides, compte bloqué"
        super().__init__(message)


class VerifierUnavailableError(AuthError):
    """Le vérificateur n'a pas pu statuer (réseau, timeout, réponse illisible)."""

    def __init__(self, message: str = "Vérificateur indisponible", provider: str = ""):
        self.provider = provider
        super().__init__(message)


class SessionExpiredError(AuthError):
    """Session expirée par inactivité."""

    pass


class MalformedSessionError(SessionExpiredError):
    """Session persistée illisible, traitée comme expirée."""

    pass


class PermissionDeniedError(AuthError):
    """Opération réservée à un rôle ou une permission."""

    def __init__(self, capability: str):
        self.capability = capability
        super().__init__(f"Permission refusée: {capability}")


class AccessDeniedError(AuthError):
    """Ressource non accessible pour le rôle courant."""

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"Accès refusé à la ressource: {resource}")


class UnsupportedOperationError(AuthError):
    """Opération non prise en charge par le vérificateur configuré."""

    pass
