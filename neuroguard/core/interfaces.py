"""
NEUROGUARD - Core Interfaces
Contrats à implémenter pour le module Core et modèles de configuration.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# ══════════════════════════════════════════════════════════════════════════════
# TYPES
# ══════════════════════════════════════════════════════════════════════════════


class IdentityProvider(str, Enum):
    """Vérificateur d'identité principal."""

    LOCAL = "local"
    SUPABASE = "supabase"


class FallbackPolicy(str, Enum):
    """Politique de repli vers la table locale."""

    NEVER = "never"
    ON_UNAVAILABLE = "on_unavailable"


class StoreBackend(str, Enum):
    MEMORY = "memory"
    FILE = "file"


class SupabaseSettings(BaseModel):
    """Accès au service d'identité Supabase (GoTrue)."""

    url: str = ""
    anon_key: str = ""
    jwt_secret: Optional[str] = None
    timeout_seconds: float = Field(10.0, gt=0, le=30)


class LocalUserSettings(BaseModel):
    """
    Compte de la table locale.

    Le secret peut être fourni en clair (haché au chargement) ou déjà haché.
    """

    key: str
    display_name: str
    role: Literal["coordinator", "staff", "intern"]
    permissions: list[str] = []
    active: bool = True
    secret: Optional[str] = None
    secret_hash: Optional[str] = None

    @field_validator("key")
    @classmethod
    def _normalize_key(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("key ne peut pas être vide")
        return normalized

    @model_validator(mode="after")
    def _exactly_one_secret(self) -> "LocalUserSettings":
        if (self.secret is None) == (self.secret_hash is None):
            raise ValueError(f"{self.key}: fournir secret OU secret_hash")
        return self


class IdentitySettings(BaseModel):
    provider: IdentityProvider = IdentityProvider.LOCAL
    fallback: FallbackPolicy = FallbackPolicy.ON_UNAVAILABLE
    supabase: SupabaseSettings = SupabaseSettings()

    @model_validator(mode="after")
    def _supabase_requires_credentials(self) -> "IdentitySettings":
        if self.provider == IdentityProvider.SUPABASE:
            if not self.supabase.url or not self.supabase.anon_key:
                raise ValueError("provider supabase: url et anon_key obligatoires")
        return self


class StoreSettings(BaseModel):
    backend: StoreBackend = StoreBackend.MEMORY
    path: Optional[str] = None

    @model_validator(mode="after")
    def _file_requires_path(self) -> "StoreSettings":
        if self.backend == StoreBackend.FILE and not self.path:
            raise ValueError("store file: path obligatoire")
        return self


class AuditSettings(BaseModel):
    max_entries: int = Field(1000, ge=1)
    persist: bool = True


class LoggingSettings(BaseModel):
    min_level: Literal["DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"] = "INFO"


class GuardConfig(BaseModel):
    """
    Configuration complète du garde d'authentification.

    Attributes:
        max_failed_attempts: Échecs consécutifs avant verrouillage
        lockout_minutes: Durée de la fenêtre de verrouillage
        session_timeout_hours: Inactivité maximale d'une session
        identity: Sélection du vérificateur principal et du repli
        local_users: Table locale (repli ou vérificateur principal)
        store: Stockage de session
        audit: Journal de sécurité
        logging: Niveau minimum des logs
    """

    max_failed_attempts: int = Field(5, ge=1)
    lockout_minutes: int = Field(15, ge=1)
    session_timeout_hours: float = Field(24, gt=0)
    identity: IdentitySettings = IdentitySettings()
    local_users: list[LocalUserSettings] = []
    store: StoreSettings = StoreSettings()
    audit: AuditSettings = AuditSettings()
    logging: LoggingSettings = LoggingSettings()

    @model_validator(mode="after")
    def _unique_local_keys(self) -> "GuardConfig":
        keys = [user.key for user in self.local_users]
        duplicates = {k for k in keys if keys.count(k) > 1}
        if duplicates:
            raise ValueError(f"Comptes locaux dupliqués: {sorted(duplicates)}")
        return self

    @property
    def lockout_window(self) -> timedelta:
        return timedelta(minutes=self.lockout_minutes)

    @property
    def session_timeout(self) -> timedelta:
        return timedelta(hours=self.session_timeout_hours)


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class IClock(ABC):
    """Source de temps injectable (UTC, timezone-aware)."""

    @abstractmethod
    def now(self) -> datetime:
        pass


class IConfigLoader(ABC):
    """Charge et valide la configuration du garde."""

    @abstractmethod
    def load(self, path: str) -> GuardConfig:
        """
        Charge la configuration depuis un fichier YAML.

        Raises:
            ConfigIntegrityError: Fichier absent, YAML invalide ou config rejetée
        """
        pass


class ICryptoProvider(ABC):
    """Hachage des secrets et empreintes d'intégrité."""

    @abstractmethod
    def hash_secret(self, secret: str) -> str:
        """
        Dérive un hash scrypt salé d'un secret.

        Returns:
            Chaîne encodée "scrypt$n$r$p$sel$hash"
        """
        pass

    @abstractmethod
    def verify_secret(self, secret: str, encoded: str) -> bool:
        """Compare un secret à son hash en temps constant."""
        pass

    @abstractmethod
    def hash(self, data: bytes) -> str:
        """
        Calcule hash SHA-384.

        Returns:
            Hash hex string (96 caractères)
        """
        pass
