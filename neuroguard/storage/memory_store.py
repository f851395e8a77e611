"""
NEUROGUARD - Memory Session Store

Stockage en mémoire, perdu au redémarrage du processus.
"""

from typing import Dict, List, Optional

from .interfaces import ISessionStore


class SessionStoreError(Exception):
    """Erreur de stockage de session."""

    pass


class MemorySessionStore(ISessionStore):
    """Stockage dict en mémoire."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise SessionStoreError(f"Valeur non textuelle pour {key}: {type(value).__name__}")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def clear(self) -> None:
        """Efface tout le stockage (pour tests)."""
        self._data.clear()
