"""
NEUROGUARD

Garde d'authentification et de sessions pour le système de gestion
de la clinique de neuropsychologie.

Sous-modules:
- core: configuration, horloge, primitives cryptographiques
- storage: stockage de session (mémoire, fichier JSON)
- auth: vérificateurs d'identité, permissions, AuthGuard
- audit: journal de sécurité chaîné
- logging: logs JSON structurés avec masquage
"""

__version__ = "1.0.0"
