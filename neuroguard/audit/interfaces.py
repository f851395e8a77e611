"""
NEUROGUARD - Audit Interfaces

Contrats du journal de sécurité: événements d'authentification, de
session et d'administration, chaînés par hash SHA-384.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SecurityEventType(Enum):
    """Types d'événements de sécurité."""

    # Authentification
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGIN_LOCKED = "login_locked"
    VERIFIER_FALLBACK = "verifier_fallback"

    # Session
    LOGOUT = "logout"
    SESSION_EXPIRED = "session_expired"

    # Compte
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_FAILED = "password_reset_failed"
    USER_CREATED = "user_created"
    USER_CREATION_FAILED = "user_creation_failed"
    ACCOUNT_UNLOCKED = "account_unlocked"

    # Autorisation
    UNAUTHORIZED_ACCESS = "unauthorized_access"


@dataclass(frozen=True)
class SecurityEvent:
    """
    Événement du journal de sécurité.

    Immutable: hash_value couvre tous les autres champs, previous_hash
    relie l'événement au précédent.
    """

    event_id: str
    event_type: SecurityEventType
    timestamp: datetime
    principal: str
    payload: Dict[str, Any] = field(default_factory=dict)
    previous_hash: Optional[str] = None
    hash_value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "principal": self.principal,
            "payload": self.payload,
            "previous_hash": self.previous_hash,
            "hash_value": self.hash_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SecurityEvent":
        """
        Reconstruit un événement sérialisé.

        Raises:
            KeyError, ValueError: Données incomplètes ou invalides
        """
        return cls(
            event_id=data["event_id"],
            event_type=SecurityEventType(data["event_type"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            principal=data.get("principal", ""),
            payload=dict(data.get("payload") or {}),
            previous_hash=data.get("previous_hash"),
            hash_value=data.get("hash_value"),
        )


class IAuditSink(ABC):
    """
    Interface du puits d'audit.

    Appelé en "fire-and-forget" par le garde: une erreur ici ne doit
    jamais faire échouer une connexion ou une déconnexion.
    """

    @abstractmethod
    async def record(
        self,
        event_type: SecurityEventType,
        payload: Optional[Dict[str, Any]] = None,
        principal: str = "",
    ) -> SecurityEvent:
        """
        Enregistre un événement.

        Args:
            event_type: Type d'événement
            payload: Détails (masqués avant stockage)
            principal: Compte normalisé ou identifiant du principal

        Returns:
            Événement enregistré

        Raises:
            AuditTrailError: Enregistrement impossible
        """
        pass

    @abstractmethod
    def events(
        self,
        event_type: Optional[SecurityEventType] = None,
        principal: Optional[str] = None,
    ) -> List[SecurityEvent]:
        """Retourne les événements conservés, filtrés, du plus ancien au plus récent."""
        pass
