"""
NEUROGUARD - Audit

Journal de sécurité chaîné (connexions, déconnexions, administration).
"""

from .interfaces import IAuditSink, SecurityEvent, SecurityEventType
from .audit_trail import AuditTrail, AuditTrailError

__all__ = [
    # Interfaces
    "IAuditSink",
    # Data classes
    "SecurityEvent",
    "SecurityEventType",
    # Implementations
    "AuditTrail",
    # Exceptions
    "AuditTrailError",
]
