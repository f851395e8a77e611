"""
NEUROGUARD - Clock
Horloges injectables pour rendre les fenêtres temporelles testables.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .interfaces import IClock


class SystemClock(IClock):
    """Horloge murale UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(IClock):
    """
    Horloge pilotée manuellement.

    Example:
        clock = ManualClock()
        clock.advance(minutes=15)
    """

    def __init__(self, start: Optional[datetime] = None):
        start = start or datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError("start doit être timezone-aware")
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: Optional[timedelta] = None, **kwargs: float) -> datetime:
        """
        Avance l'horloge.

        Args:
            delta: Décalage explicite
            **kwargs: Arguments timedelta (minutes=, milliseconds=, ...)

        Returns:
            Nouvelle heure courante
        """
        step = delta if delta is not None else timedelta(**kwargs)
        if step < timedelta(0):
            raise ValueError("Une horloge ne recule pas")
        self._now = self._now + step
        return self._now

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("moment doit être timezone-aware")
        self._now = moment
