"""
NEUROGUARD - Audit Trail Implementation

Journal de sécurité borné, chaîné par hash SHA-384 et optionnellement
persisté dans le stockage de session.
"""

import json
import uuid
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from .interfaces import IAuditSink, SecurityEvent, SecurityEventType
from ..core.interfaces import IClock, ICryptoProvider
from ..logging.interfaces import ISensitiveMasker, IStructuredLogger
from ..logging.sensitive_masker import SensitiveMasker
from ..storage.interfaces import ISessionStore


class AuditTrailError(Exception):
    """Erreur d'enregistrement dans le journal de sécurité."""

    pass


class AuditTrail(IAuditSink):
    """
    Journal de sécurité en mémoire, borné aux max_entries derniers événements.

    Chaque événement porte le hash du précédent: verify_chain() détecte
    toute altération des événements conservés.

    Example:
        trail = AuditTrail(crypto, clock, store=store)
        await trail.record(SecurityEventType.LOGIN_SUCCESS, {"provider": "local"}, principal="coord@clinica.com")
    """

    STORE_KEY: str = "neuroguard.security_log"
    DEFAULT_MAX_ENTRIES: int = 1000

    def __init__(
        self,
        crypto_provider: ICryptoProvider,
        clock: IClock,
        store: Optional[ISessionStore] = None,
        masker: Optional[ISensitiveMasker] = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        logger: Optional[IStructuredLogger] = None,
    ):
        """
        Args:
            crypto_provider: Calcul des hash SHA-384
            clock: Horodatage des événements
            store: Stockage de persistance (None = mémoire seule)
            masker: Masquage des payloads
            max_entries: Nombre d'événements conservés
            logger: Logger pour signaler un journal persisté illisible
        """
        if max_entries < 1:
            raise AuditTrailError("max_entries doit être >= 1")

        self.crypto_provider = crypto_provider
        self._clock = clock
        self._store = store
        self._masker = masker or SensitiveMasker()
        self._logger = logger
        self._events: Deque[SecurityEvent] = deque(maxlen=max_entries)
        self._last_hash: Optional[str] = None

        self._load_persisted()

    async def record(
        self,
        event_type: SecurityEventType,
        payload: Optional[Dict[str, Any]] = None,
        principal: str = "",
    ) -> SecurityEvent:
        """
        Enregistre un événement chaîné.

        Raises:
            AuditTrailError: Type invalide ou payload non sérialisable
        """
        if not isinstance(event_type, SecurityEventType):
            raise AuditTrailError(f"Type événement invalide: {event_type}")

        clean_payload = self._masker.mask(dict(payload or {}))

        preliminary = SecurityEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            timestamp=self._clock.now(),
            principal=principal or "",
            payload=clean_payload,
            previous_hash=self._last_hash,
        )

        try:
            hash_value = self.compute_event_hash(preliminary)
        except (TypeError, ValueError) as e:
            raise AuditTrailError(f"Payload non sérialisable: {e}")

        event = SecurityEvent(
            event_id=preliminary.event_id,
            event_type=preliminary.event_type,
            timestamp=preliminary.timestamp,
            principal=preliminary.principal,
            payload=preliminary.payload,
            previous_hash=preliminary.previous_hash,
            hash_value=hash_value,
        )

        self._events.append(event)
        self._last_hash = hash_value
        self._persist()

        return event

    def events(
        self,
        event_type: Optional[SecurityEventType] = None,
        principal: Optional[str] = None,
    ) -> List[SecurityEvent]:
        return [
            e
            for e in self._events
            if (event_type is None or e.event_type == event_type)
            and (principal is None or e.principal == principal)
        ]

    def compute_event_hash(self, event: SecurityEvent) -> str:
        """
        Hash SHA-384 de la représentation canonique (hash_value exclu).

        Returns:
            Hash hexadécimal
        """
        canonical = {
            "event_id": event.event_id,
            "event_type": event.event_type.value,
            "timestamp": event.timestamp.isoformat(),
            "principal": event.principal,
            "payload": event.payload,
            "previous_hash": event.previous_hash,
        }
        data = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return self.crypto_provider.hash(data.encode("utf-8"))

    def verify_chain(self) -> List[str]:
        """
        Détecte les altérations dans les événements conservés.

        Le premier événement conservé est accepté tel quel comme ancre
        (ses prédécesseurs ont pu être évincés).

        Returns:
            Liste des event_ids altérés (vide si chaîne intègre)
        """
        tampered: List[str] = []
        previous: Optional[SecurityEvent] = None

        for event in self._events:
            if self.compute_event_hash(event) != event.hash_value:
                tampered.append(event.event_id)
            elif previous is not None and event.previous_hash != previous.hash_value:
                tampered.append(event.event_id)
            previous = event

        return tampered

    def clear(self) -> None:
        """Efface le journal (pour tests)."""
        self._events.clear()
        self._last_hash = None
        if self._store:
            self._store.remove(self.STORE_KEY)

    def _persist(self) -> None:
        if not self._store:
            return
        serialized = json.dumps([e.to_dict() for e in self._events], ensure_ascii=False)
        self._store.set(self.STORE_KEY, serialized)

    def _load_persisted(self) -> None:
        if not self._store:
            return

        raw = self._store.get(self.STORE_KEY)
        if not raw:
            return

        try:
            items = json.loads(raw)
            loaded = [SecurityEvent.from_dict(item) for item in items]
        except (KeyError, TypeError, ValueError) as e:
            if self._logger:
                self._logger.error("Journal de sécurité persisté illisible, ignoré", reason=str(e))
            return

        self._events.extend(loaded)
        if self._events:
            self._last_hash = self._events[-1].hash_value
