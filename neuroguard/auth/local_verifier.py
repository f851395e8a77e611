"""
NEUROGUARD - Local Credential Verifier

Vérification contre une table de comptes locale (secrets hachés scrypt).
Sert de vérificateur principal hors ligne ou de repli quand le service
d'identité distant est indisponible.
"""

import asyncio
from typing import Dict, Iterable, List, Optional

from .errors import InvalidCredentialsError
from .interfaces import CredentialRecord, ICredentialVerifier, Principal, Role, normalize_key
from ..core.interfaces import ICryptoProvider, LocalUserSettings


class LocalCredentialVerifier(ICredentialVerifier):
    """
    Table de comptes en mémoire.

    Un identifiant inconnu déclenche tout de même une vérification scrypt
    sur un hash factice, pour ne pas révéler l'existence du compte par le
    temps de réponse.

    Example:
        verifier = LocalCredentialVerifier.from_settings(config.local_users, crypto)
        principal = await verifier.verify("coord@clinica.com", "coord123")
    """

    provider_name = "local"

    def __init__(self, records: Iterable[CredentialRecord], crypto_provider: ICryptoProvider):
        """
        Args:
            records: Comptes (clés normalisées à l'insertion)
            crypto_provider: Vérification des hash
        """
        self.crypto_provider = crypto_provider
        self._records: Dict[str, CredentialRecord] = {}
        self._dummy_hash: Optional[str] = None
        for record in records:
            self.add_record(record)

    @classmethod
    def from_settings(
        cls, users: Iterable[LocalUserSettings], crypto_provider: ICryptoProvider
    ) -> "LocalCredentialVerifier":
        """Construit la table depuis la configuration, en hachant les secrets en clair."""
        records = []
        for user in users:
            secret_hash = user.secret_hash or crypto_provider.hash_secret(user.secret)
            records.append(
                CredentialRecord(
                    key=user.key,
                    secret_hash=secret_hash,
                    display_name=user.display_name,
                    role=Role.parse(user.role),
                    permissions=tuple(user.permissions),
                    active=user.active,
                )
            )
        return cls(records, crypto_provider)

    def add_record(self, record: CredentialRecord) -> None:
        key = normalize_key(record.key)
        if not key:
            raise ValueError("Compte local sans identifiant")
        if key != record.key:
            record = CredentialRecord(
                key=key,
                secret_hash=record.secret_hash,
                display_name=record.display_name,
                role=record.role,
                permissions=record.permissions,
                active=record.active,
            )
        self._records[key] = record

    def keys(self) -> List[str]:
        return sorted(self._records.keys())

    async def verify(self, key: str, secret: str) -> Principal:
        """
        Vérifie les identifiants contre la table.

        Raises:
            InvalidCredentialsError: Compte inconnu, inactif ou secret incorrect
        """
        normalized = normalize_key(key)
        record = self._records.get(normalized)

        if record is None:
            dummy_hash = await self._get_dummy_hash()
            await asyncio.to_thread(self.crypto_provider.verify_secret, secret or "", dummy_hash)
            raise InvalidCredentialsError(reason="unknown_account")

        # scrypt hors de la boucle d'événements
        secret_ok = await asyncio.to_thread(self.crypto_provider.verify_secret, secret or "", record.secret_hash)

        if not record.active:
            raise InvalidCredentialsError(reason="inactive_account")
        if not secret_ok:
            raise InvalidCredentialsError(reason="wrong_secret")

        return Principal(
            principal_id=record.key,
            key=record.key,
            display_name=record.display_name,
            role=record.role,
            permissions=tuple(record.permissions),
            provider=self.provider_name,
        )

    async def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = await asyncio.to_thread(self.crypto_provider.hash_secret, "neuroguard-dummy-secret")
        return self._dummy_hash
