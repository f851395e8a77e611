"""
NEUROGUARD - Permission Checker

Autorisation par rôle: coordinateur sans restriction, équipe clinique
et stagiaires limités à leurs permissions et ressources.
"""

from typing import Dict, FrozenSet, Optional

from .interfaces import Role, Session


class PermissionChecker:
    """
    Vérificateur de permissions et d'accès aux ressources.

    Example:
        checker = PermissionChecker()
        checker.can_access_resource(Role.STAFF, "reports")  # True
    """

    # Ressources accessibles par rôle (None = toutes)
    RESOURCE_ACCESS: Dict[Role, Optional[FrozenSet[str]]] = {
        Role.COORDINATOR: None,
        Role.STAFF: frozenset({"clients", "schedule", "reports"}),
        Role.INTERN: frozenset({"schedule", "my_clients"}),
    }

    def has_permission(self, session: Optional[Session], capability: str) -> bool:
        """
        Vérifie une capacité.

        Args:
            session: Session courante (None = anonyme)
            capability: Capacité demandée (ex: "reports")

        Returns:
            True si coordinateur, ou si la capacité figure dans les permissions
        """
        if session is None:
            return False

        if session.role is Role.COORDINATOR:
            return True
        if not capability:
            return False
        if session.role in (Role.STAFF, Role.INTERN):
            return capability in session.permissions

        raise ValueError(f"Rôle non géré: {session.role}")

    def can_access_resource(self, role: Optional[Role], resource: str) -> bool:
        """
        Vérifie l'accès à une ressource selon la table RESOURCE_ACCESS.

        Returns:
            False pour un rôle absent ou inconnu
        """
        if not isinstance(role, Role) or not resource:
            return False

        allowed = self.RESOURCE_ACCESS[role]
        if allowed is None:
            return True
        return resource in allowed

    def allowed_resources(self, role: Role) -> Optional[FrozenSet[str]]:
        """Ressources d'un rôle (None = toutes)."""
        return self.RESOURCE_ACCESS[role]
