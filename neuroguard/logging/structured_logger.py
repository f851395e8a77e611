"""
NEUROGUARD - Structured Logger

Logger JSON structuré: une ligne JSON par entrée, champs supplémentaires
masqués par SensitiveMasker.
"""

import sys
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, List, Optional

from .interfaces import (
    IStructuredLogger,
    ISensitiveMasker,
    LogConfig,
    LogEntry,
    LogLevel,
)
from .sensitive_masker import SensitiveMasker
from ..core.clock import SystemClock
from ..core.interfaces import IClock


class InvalidLogLevelError(Exception):
    """Niveau de log invalide."""

    def __init__(self, level: str) -> None:
        self.level = level
        super().__init__(f"Invalid log level: {level}")


def _stderr_handler(line: str) -> None:
    sys.stderr.write(line + "\n")


class StructuredLogger(IStructuredLogger):
    """
    Logger JSON structuré.

    Example:
        logger = StructuredLogger("neuroguard.auth")
        logger.info("Connexion réussie", account="coord@clinica.com", provider="local")
    """

    def __init__(
        self,
        name: str,
        config: Optional[LogConfig] = None,
        masker: Optional[ISensitiveMasker] = None,
        output_handler: Optional[Callable[[str], None]] = None,
        clock: Optional[IClock] = None,
    ) -> None:
        """
        Args:
            name: Nom du logger (identifiant module)
            config: Configuration optionnelle
            masker: Masker pour données sensibles
            output_handler: Destination des lignes JSON (défaut: stderr)
            clock: Source de temps des timestamps

        Raises:
            ValueError: Si name vide
        """
        if not name or not name.strip():
            raise ValueError("Logger name cannot be empty")

        self._name = name.strip()
        self._config = config or LogConfig()
        self._masker = masker or SensitiveMasker()
        self._output_handler = output_handler or _stderr_handler
        self._clock = clock or SystemClock()
        self._entries: Deque[LogEntry] = deque(maxlen=max(1, self._config.max_entries))

    @classmethod
    def from_level_name(cls, name: str, level_name: str, **kwargs: Any) -> "StructuredLogger":
        """
        Crée un logger depuis un nom de niveau ("INFO", "WARN", ...).

        Raises:
            InvalidLogLevelError: Niveau inconnu
        """
        try:
            level = LogLevel(level_name.upper())
        except ValueError:
            raise InvalidLogLevelError(level_name)
        return cls(name, config=LogConfig(min_level=level), **kwargs)

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> LogConfig:
        return self._config

    def log(
        self,
        level: LogLevel,
        message: str,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> Optional[LogEntry]:
        """
        Crée une entrée de log structurée.

        Processus:
            1. Vérifie niveau >= min_level
            2. Résout correlation_id (généré si absent)
            3. Masque données sensibles dans extra
            4. Émet la ligne JSON

        Returns:
            LogEntry créé ou None si filtré
        """
        if not self._should_log(level):
            return None

        if not message:
            raise ValueError("Log message cannot be empty")

        resolved_correlation = correlation_id or str(uuid.uuid4())

        extra_fields = {}
        if extra and self._config.include_extra:
            extra_fields = self._masker.mask(dict(extra)) if self._config.mask_sensitive else dict(extra)

        entry = LogEntry(
            timestamp=self._format_timestamp(self._clock.now()),
            level=level,
            correlation_id=resolved_correlation,
            message=message,
            extra=extra_fields,
            logger_name=self._name,
        )

        self._entries.append(entry)
        self._output_handler(entry.to_json())

        return entry

    @staticmethod
    def _format_timestamp(moment: datetime) -> str:
        """Format: 2025-01-01T09:00:00.123Z"""
        return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"

    def _should_log(self, level: LogLevel) -> bool:
        return LogLevel.get_priority(level) >= LogLevel.get_priority(self._config.min_level)

    def debug(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.INFO, message, **extra)

    def warn(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.WARN, message, **extra)

    def error(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.ERROR, message, **extra)

    def critical(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.CRITICAL, message, **extra)

    def get_entries(self) -> List[LogEntry]:
        return list(self._entries)

    def clear_entries(self) -> None:
        self._entries.clear()

    def get_entries_by_level(self, level: LogLevel) -> List[LogEntry]:
        return [e for e in self._entries if e.level == level]

    def with_context(self, correlation_id: Optional[str] = None) -> "ContextualLogger":
        """
        Crée un logger avec correlation_id fixé.

        Args:
            correlation_id: ID corrélation (généré si absent)
        """
        return ContextualLogger(self, correlation_id or str(uuid.uuid4()))


class ContextualLogger(IStructuredLogger):
    """
    Logger avec contexte pré-défini.

    Le garde en crée un par tentative de connexion pour corréler les
    lignes d'un même flux.
    """

    def __init__(self, logger: StructuredLogger, correlation_id: str) -> None:
        self._logger = logger
        self.correlation_id = correlation_id

    def log(
        self,
        level: LogLevel,
        message: str,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> Optional[LogEntry]:
        return self._logger.log(level, message, correlation_id=correlation_id or self.correlation_id, **extra)

    def debug(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.INFO, message, **extra)

    def warn(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.WARN, message, **extra)

    def error(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.ERROR, message, **extra)

    def critical(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.CRITICAL, message, **extra)

    def get_entries(self) -> List[LogEntry]:
        return [e for e in self._logger.get_entries() if e.correlation_id == self.correlation_id]
