"""
NEUROGUARD - Config Loader Implementation
Charge la configuration YAML, applique les surcharges d'environnement
et valide le résultat.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from .interfaces import GuardConfig, IConfigLoader


class ConfigIntegrityError(Exception):
    """Erreur d'intégrité de configuration."""

    pass


class ConfigLoader(IConfigLoader):
    """
    Chargement de la configuration depuis un fichier YAML.

    Les variables d'environnement ENV_OVERRIDES remplacent les valeurs
    du fichier (injection des clés Supabase au déploiement).

    Example:
        config = ConfigLoader().load("config/neuroguard.yaml")
    """

    ENV_OVERRIDES: Dict[str, tuple] = {
        "NEUROGUARD_IDENTITY_PROVIDER": ("identity", "provider"),
        "NEUROGUARD_FALLBACK": ("identity", "fallback"),
        "NEUROGUARD_SUPABASE_URL": ("identity", "supabase", "url"),
        "NEUROGUARD_SUPABASE_ANON_KEY": ("identity", "supabase", "anon_key"),
        "NEUROGUARD_SUPABASE_JWT_SECRET": ("identity", "supabase", "jwt_secret"),
        "NEUROGUARD_STORE_PATH": ("store", "path"),
        "NEUROGUARD_LOG_LEVEL": ("logging", "min_level"),
    }

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        Args:
            environ: Environnement à consulter (défaut: os.environ)
        """
        self._environ = environ if environ is not None else os.environ

    def load(self, path: str) -> GuardConfig:
        """
        Charge la configuration.

        Args:
            path: Chemin du fichier YAML

        Returns:
            Configuration validée

        Raises:
            ConfigIntegrityError: Si fichier inexistant ou structure invalide
        """
        config_file = Path(path)

        if not config_file.exists():
            raise ConfigIntegrityError(f"Configuration non trouvée: {config_file}")

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigIntegrityError(f"Erreur de parsing YAML: {e}")
        except OSError as e:
            raise ConfigIntegrityError(f"Erreur de lecture fichier: {e}")

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigIntegrityError("Configuration doit être un objet YAML")

        return self.from_dict(raw)

    def from_dict(self, raw: Dict[str, Any]) -> GuardConfig:
        """
        Valide un dictionnaire déjà chargé (surcharges d'environnement incluses).

        Raises:
            ConfigIntegrityError: Si la validation pydantic échoue
        """
        merged = self._apply_env_overrides(raw)
        try:
            return GuardConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigIntegrityError(f"Configuration invalide: {e}")

    def _apply_env_overrides(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Copie la config et y injecte les variables d'environnement définies."""
        merged = copy.deepcopy(raw)

        for env_name, path in self.ENV_OVERRIDES.items():
            value = self._environ.get(env_name)
            if value is None or value == "":
                continue

            node = merged
            for part in path[:-1]:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
            node[path[-1]] = value

        return merged
