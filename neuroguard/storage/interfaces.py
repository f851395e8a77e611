"""
NEUROGUARD - Storage Interfaces

Stockage clé-valeur limité à un contexte de navigation (équivalent
du localStorage). Les valeurs sont des chaînes, en pratique du JSON.
"""

from abc import ABC, abstractmethod
from typing import List, Optional


class ISessionStore(ABC):
    """
    Interface stockage de session.

    Utilisé pour la session courante, les compteurs de tentatives et
    le journal de sécurité, sous des clés distinctes.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Retourne la valeur stockée ou None."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Stocke une valeur.

        Raises:
            SessionStoreError: Écriture impossible
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Supprime une clé (sans erreur si absente)."""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """Liste les clés présentes."""
        pass
