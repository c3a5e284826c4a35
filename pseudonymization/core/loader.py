# pseudonymization/core/loader.py

"""Vocabulary loader for placeholder categories and fallback patterns."""

import re
import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional, Pattern

from pseudonymization.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class VocabularyLoader:
    """Singleton loader for the static vocabulary.

    Loads vocabulary.yaml once and caches it for the application lifecycle.
    The loaded data is read-only, so concurrent requests may share it.
    """

    _instance: Optional["VocabularyLoader"] = None
    _config: Dict[str, Any] = {}
    _loaded: bool = False
    _cached_artifacts: List[Pattern] = []

    def __new__(cls) -> "VocabularyLoader":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if not VocabularyLoader._loaded:
            self._load_config()

    def _load_config(self) -> None:
        """Loads vocabulary.yaml from the module directory.

        Raises:
            ConfigurationError: If file is missing, invalid, or empty.
        """
        try:
            config_path = Path(__file__).parent / "vocabulary.yaml"

            if not config_path.exists():
                error_msg = f"Vocabulary file not found: {config_path}"
                logger.error(error_msg)
                raise ConfigurationError(error_msg)

            with open(config_path, "r", encoding="utf-8") as f:
                VocabularyLoader._config = yaml.safe_load(f)

            if not VocabularyLoader._config:
                raise ConfigurationError("Vocabulary file is empty or invalid")

            self._validate_config()

            VocabularyLoader._cached_artifacts = [
                re.compile(p) for p in VocabularyLoader._config.get("artifacts", [])
            ]

            VocabularyLoader._loaded = True
            logger.info(
                "Vocabulary loaded successfully",
                extra={
                    "config_path": str(config_path),
                    "category_count": len(VocabularyLoader._config["categories"]),
                    "fallback_pattern_count": len(
                        VocabularyLoader._config["fallback"].get("patterns", [])
                    ),
                },
            )

        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error: {e}", exc_info=True)
            raise ConfigurationError(f"Failed to parse vocabulary.yaml: {e}") from e
        except re.error as e:
            logger.error(f"Invalid artifact pattern: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid artifact pattern: {e}") from e
        except Exception as e:
            if isinstance(e, ConfigurationError):
                raise
            logger.error(f"Vocabulary loading failed: {e}", exc_info=True)
            raise ConfigurationError(f"Failed to load vocabulary: {e}") from e

    def _validate_config(self) -> None:
        """Validates required vocabulary sections exist.

        Raises:
            ConfigurationError: If required sections are missing.
        """
        required_sections = ["categories", "fallback", "artifacts", "prompts"]
        missing = [s for s in required_sections if s not in VocabularyLoader._config]

        if missing:
            error_msg = f"Missing required vocabulary sections: {missing}"
            logger.error(error_msg)
            raise ConfigurationError(error_msg)

    @classmethod
    def get_instance(cls) -> "VocabularyLoader":
        """Returns the singleton instance of VocabularyLoader."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_categories(self) -> List[Dict[str, Any]]:
        """Returns placeholder categories in matching order.

        Returns:
            List of dictionaries with 'placeholder' and 'keywords' keys
        """
        return self._config.get("categories", []) or []

    def get_fallback_patterns(self) -> List[Dict[str, Any]]:
        """Returns regex heuristics used by the local simulation.

        Returns:
            List of dictionaries with 'entity', 'placeholder', 'name',
            'regex' and 'score' keys
        """
        return self._config.get("fallback", {}).get("patterns", []) or []

    def get_fallback_restore_table(self) -> Dict[str, str]:
        """Returns the fixed placeholder -> sample value table."""
        return self._config.get("fallback", {}).get("restore", {}) or {}

    def get_improvement_note(self) -> str:
        return self._config.get("fallback", {}).get("improvement_note", "")

    def get_artifact_patterns(self) -> List[Pattern]:
        """Returns the pre-compiled commentary-tag patterns."""
        return self._cached_artifacts

    def get_default_prompt(self) -> str:
        return self._config.get("prompts", {}).get("improvement", "")
