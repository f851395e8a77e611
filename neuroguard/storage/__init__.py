"""
NEUROGUARD - Storage

Stockage de session clé-valeur (mémoire ou fichier JSON).
"""

from .interfaces import ISessionStore
from .memory_store import MemorySessionStore, SessionStoreError
from .file_store import JsonFileSessionStore

__all__ = [
    # Interfaces
    "ISessionStore",
    # Implementations
    "MemorySessionStore",
    "JsonFileSessionStore",
    # Exceptions
    "SessionStoreError",
]
