"""
NEUROGUARD - Auth Interfaces

Types du garde d'authentification et contrats des vérificateurs.
Un vérificateur expose un ensemble de capacités: vérification (toujours),
déconnexion distante, réinitialisation de mot de passe, création de compte.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import AuthError, MalformedSessionError


class Role(Enum):
    """Rôles de l'équipe de la clinique."""

    COORDINATOR = "coordinator"
    STAFF = "staff"
    INTERN = "intern"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """
        Convertit une valeur brute en rôle.

        Raises:
            ValueError: Rôle inconnu
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Rôle invalide: {value!r}")
        return cls(value.strip().lower())


def normalize_key(key: str) -> str:
    """Identifiant de connexion normalisé (trim + minuscules)."""
    return (key or "").strip().lower()


@dataclass(frozen=True)
class CredentialRecord:
    """
    Compte de la table locale.

    Attributes:
        key: Email ou nom d'utilisateur normalisé
        secret_hash: Hash scrypt du secret (jamais le secret en clair)
        display_name: Nom affiché
        role: Rôle
        permissions: Capacités accordées
        active: Compte désactivé = jamais vérifié
    """

    key: str
    secret_hash: str
    display_name: str
    role: Role
    permissions: tuple = ()
    active: bool = True


@dataclass(frozen=True)
class Principal:
    """Identité confirmée par un vérificateur."""

    principal_id: str
    key: str
    display_name: str
    role: Role
    permissions: tuple
    provider: str
    access_token: Optional[str] = None


@dataclass
class Session:
    """
    Session authentifiée (une seule par contexte de navigation).

    Attributes:
        principal_id: Identifiant du principal
        display_name: Nom affiché
        role: Rôle
        permissions: Capacités accordées
        issued_at: Création
        last_activity_at: Dernière vérification de vivacité (>= issued_at)
        provider: Vérificateur ayant authentifié ("local", "supabase")
        access_token: Jeton distant, utilisé pour la déconnexion distante
    """

    principal_id: str
    display_name: str
    role: Role
    permissions: List[str]
    issued_at: datetime
    last_activity_at: datetime
    provider: str
    access_token: Optional[str] = None

    def __post_init__(self):
        if self.last_activity_at < self.issued_at:
            raise ValueError("last_activity_at doit être >= issued_at")

    @classmethod
    def from_principal(cls, principal: Principal, now: datetime) -> "Session":
        return cls(
            principal_id=principal.principal_id,
            display_name=principal.display_name,
            role=principal.role,
            permissions=list(principal.permissions),
            issued_at=now,
            last_activity_at=now,
            provider=principal.provider,
            access_token=principal.access_token,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "principal_id": self.principal_id,
            "display_name": self.display_name,
            "role": self.role.value,
            "permissions": list(self.permissions),
            "issued_at": self.issued_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
            "provider": self.provider,
            "access_token": self.access_token,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Session":
        """
        Reconstruit une session persistée.

        Raises:
            MalformedSessionError: Données absentes, incomplètes ou incohérentes
        """
        if not isinstance(data, dict):
            raise MalformedSessionError("Session persistée non objet")
        try:
            permissions = data["permissions"]
            if not isinstance(permissions, list) or not all(isinstance(p, str) for p in permissions):
                raise ValueError("permissions invalides")
            issued_at = datetime.fromisoformat(data["issued_at"])
            last_activity_at = datetime.fromisoformat(data["last_activity_at"])
            if issued_at.tzinfo is None or last_activity_at.tzinfo is None:
                raise ValueError("horodatage sans fuseau")
            return cls(
                principal_id=str(data["principal_id"]),
                display_name=str(data["display_name"]),
                role=Role.parse(data["role"]),
                permissions=permissions,
                issued_at=issued_at,
                last_activity_at=last_activity_at,
                provider=str(data["provider"]),
                access_token=data.get("access_token"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedSessionError(f"Session persistée invalide: {e}")


@dataclass
class LoginAttempt:
    """
    Compteur d'échecs de connexion pour un identifiant normalisé.

    count ne décroît jamais, sauf remise à zéro explicite
    (connexion réussie ou fin de la fenêtre de verrouillage).
    """

    count: int
    last_attempt_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "last_attempt_at": self.last_attempt_at.isoformat()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoginAttempt":
        """
        Raises:
            KeyError, TypeError, ValueError: Compteur illisible
        """
        count = data["count"]
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise ValueError(f"count invalide: {count!r}")
        last_attempt_at = datetime.fromisoformat(data["last_attempt_at"])
        if last_attempt_at.tzinfo is None:
            raise ValueError("last_attempt_at sans fuseau")
        return cls(count=count, last_attempt_at=last_attempt_at)


@dataclass(frozen=True)
class LoginResult:
    """
    Résultat explicite d'une tentative de connexion.

    Exactement un des deux champs est renseigné.
    """

    session: Optional[Session] = None
    error: Optional[AuthError] = None

    def __post_init__(self):
        if (self.session is None) == (self.error is None):
            raise ValueError("LoginResult: session OU error")

    @property
    def ok(self) -> bool:
        return self.session is not None

    def unwrap(self) -> Session:
        """
        Returns:
            Session si succès

        Raises:
            AuthError: L'erreur portée par le résultat
        """
        if self.error is not None:
            raise self.error
        return self.session


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class ICredentialVerifier(ABC):
    """
    Vérifie un couple identifiant / secret.

    Table locale et service d'identité distant sont traités de façon
    identique par le garde à travers cette interface.
    """

    #: Nom du fournisseur, reporté dans Session.provider
    provider_name: str = ""

    @abstractmethod
    async def verify(self, key: str, secret: str) -> Principal:
        """
        Vérifie les identifiants.

        Args:
            key: Identifiant normalisé
            secret: Secret en clair (jamais loggé)

        Returns:
            Principal authentifié

        Raises:
            InvalidCredentialsError: Refus définitif
            VerifierUnavailableError: Impossible de statuer
        """
        pass


class IRemoteSignOut(ABC):
    """Capacité: invalider la session côté service d'identité."""

    @abstractmethod
    async def sign_out(self, access_token: Optional[str]) -> None:
        """
        Raises:
            VerifierUnavailableError: Appel distant en échec
        """
        pass


class IPasswordResetter(ABC):
    """Capacité: envoyer un email de réinitialisation."""

    @abstractmethod
    async def request_password_reset(self, email: str) -> None:
        """
        Raises:
            VerifierUnavailableError: Appel distant en échec
        """
        pass


class IAccountProvisioner(ABC):
    """Capacité: créer un compte dans le service d'identité."""

    @abstractmethod
    async def create_user(
        self,
        email: str,
        secret: str,
        display_name: str,
        role: Role,
        permissions: List[str],
    ) -> Principal:
        """
        Raises:
            InvalidCredentialsError: Compte refusé (email pris, secret trop faible)
            VerifierUnavailableError: Appel distant en échec
        """
        pass
