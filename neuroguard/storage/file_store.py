"""
NEUROGUARD - JSON File Session Store

Stockage persistant dans un unique fichier JSON, réécrit de manière
atomique (fichier temporaire + os.replace).
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from .interfaces import ISessionStore
from .memory_store import SessionStoreError
from ..logging.interfaces import IStructuredLogger


class JsonFileSessionStore(ISessionStore):
    """
    Stockage de session sur disque.

    Un fichier illisible ou corrompu est traité comme vide: la session
    repart anonyme plutôt que de rester bloquée. Le fichier est écrasé
    à la prochaine écriture.

    Example:
        store = JsonFileSessionStore("/var/lib/neuroguard/session.json")
        store.set("neuroguard.session", "{...}")
    """

    def __init__(self, path: str, logger: Optional[IStructuredLogger] = None):
        """
        Args:
            path: Fichier JSON cible (créé à la première écriture)
            logger: Logger structuré pour signaler les fichiers corrompus
        """
        self.path = Path(path)
        self._logger = logger

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise SessionStoreError(f"Valeur non textuelle pour {key}: {type(value).__name__}")
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def keys(self) -> List[str]:
        return list(self._read().keys())

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self._warn_corrupted(str(e))
            return {}

        if not isinstance(data, dict):
            self._warn_corrupted("racine JSON non objet")
            return {}

        # Ignorer les entrées non textuelles plutôt que tout rejeter
        return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".neuroguard-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise SessionStoreError(f"Écriture impossible dans {self.path}: {e}")

    def _warn_corrupted(self, reason: str) -> None:
        if self._logger:
            self._logger.warn("Fichier de session illisible, traité comme vide", path=str(self.path), reason=reason)
