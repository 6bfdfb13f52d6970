"""
Configuration loader module.

Handles loading and validation of JSON files:
- audit settings (optional; defaults apply when absent)
- the benchmark check catalog (ordered list of check descriptors)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List

from pydantic import TypeAdapter, ValidationError

from sqlbenchaudit.domain.checks import CheckDescriptor
from sqlbenchaudit.domain.report import check_anchor
from sqlbenchaudit.domain.settings import AuditSettings
from sqlbenchaudit.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Catalog shipped with the package
DEFAULT_CATALOG = Path(__file__).resolve().parent.parent / "catalog" / "cis_checks.json"

_CATALOG_ADAPTER = TypeAdapter(List[CheckDescriptor])


class ConfigLoader:
    """
    Load and validate configuration files.

    All failures surface as ConfigurationError with a hint for the user.
    """

    def _load_json_file(self, filepath: Path) -> Any:
        """
        Load and parse a JSON file with clear error messages.

        Raises:
            ConfigurationError: Missing, unreadable, empty or malformed file
        """
        if not filepath.exists():
            raise ConfigurationError(f"Configuration file not found: {filepath}")

        try:
            content = filepath.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read config file: {filepath} ({e})\n"
                f"Hint: Check file permissions or if another process has it locked."
            ) from e

        if not content.strip():
            raise ConfigurationError(f"Configuration file is empty: {filepath}")

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in config file: {filepath}\n"
                f"Error at line {e.lineno}, column {e.colno}: {e.msg}\n"
                f"Hint: Validate JSON syntax. Note: .json files cannot have comments."
            ) from e

    def load_settings(self, filepath: Path | str | None = None) -> AuditSettings:
        """
        Load audit settings.

        Args:
            filepath: Settings file; defaults are used when None

        Returns:
            AuditSettings
        """
        if filepath is None:
            logger.debug("No settings file given, using defaults")
            return AuditSettings()

        path = Path(filepath)
        logger.info("Loading settings from: %s", path)
        data = self._load_json_file(path)
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file must contain a JSON object: {path}")

        try:
            return AuditSettings.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings in {path}:\n{e}") from e

    def load_catalog(self, filepath: Path | str | None = None) -> list[CheckDescriptor]:
        """
        Load the ordered check catalog.

        Accepts either a JSON array of checks or an object with a ``checks``
        array. Order is preserved exactly. Ids that would produce the same
        report anchor (equal, or equal once case and punctuation are dropped)
        are rejected.

        Args:
            filepath: Catalog file; the bundled catalog when None

        Returns:
            List of CheckDescriptor in catalog order
        """
        path = Path(filepath) if filepath is not None else DEFAULT_CATALOG
        logger.info("Loading check catalog from: %s", path)
        data = self._load_json_file(path)
        if isinstance(data, dict):
            data = data.get("checks", [])

        try:
            checks = _CATALOG_ADAPTER.validate_python(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid check catalog {path}:\n{e}") from e

        # Ids differing only in case or punctuation share a report anchor
        seen: dict[str, str] = {}
        for check in checks:
            anchor = check_anchor(check.id)
            if anchor in seen:
                if seen[anchor] == check.id:
                    raise ConfigurationError(f"Duplicate check id '{check.id}' in {path}")
                raise ConfigurationError(
                    f"Check ids '{seen[anchor]}' and '{check.id}' in {path} map to the same "
                    f"report anchor '{anchor}'"
                )
            seen[anchor] = check.id

        logger.info("Loaded %d checks", len(checks))
        return checks
