"""YAML configuration loader for ledgerlink.

Loads the seed config files from the config/ directory:
  merchants.yaml, rules.yaml

Environment overrides:
  LEDGERLINK_CONFIG_DIR      config directory (default: config)
  LEDGERLINK_DB_PATH         SQLite database path (default: ledgerlink.db)
  LEDGERLINK_LOG_LEVEL       root log level (default: INFO)
  LEDGERLINK_MIGRATIONS_DIR  directory of *.sql migrations
"""

import os
from pathlib import Path

import yaml

DEFAULT_SAME_BATCH_DAYS = 1
DEFAULT_CROSS_PROVIDER_DAYS = 4
DEFAULT_MARKERS = {"aib_import": "*MOBI"}


def config_dir_from_env() -> Path:
    return Path(os.environ.get("LEDGERLINK_CONFIG_DIR", "config"))


def db_path_from_env() -> str:
    return os.environ.get("LEDGERLINK_DB_PATH", "ledgerlink.db")


def log_level_from_env() -> str:
    return os.environ.get("LEDGERLINK_LOG_LEVEL", "INFO").upper()


def migrations_dir_from_env() -> Path | None:
    value = os.environ.get("LEDGERLINK_MIGRATIONS_DIR")
    return Path(value) if value else None


class Config:
    """Loads and provides access to the YAML configuration files."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._merchants: dict | None = None
        self._rules: dict | None = None

    def _load(self, filename: str) -> dict | list:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        return data

    @property
    def merchants(self) -> dict:
        if self._merchants is None:
            self._merchants = self._load("merchants.yaml")
        return self._merchants

    @property
    def merchant_rules(self) -> list[dict]:
        """Ordered merchant rules: pattern, match, category_id, kind."""
        return self.merchants.get("rules", []) or []

    @property
    def rules(self) -> dict:
        if self._rules is None:
            self._rules = self._load("rules.yaml")
        return self._rules

    @property
    def transfer_category(self) -> str | None:
        """Reserved category id for matched transfers, or None if unset."""
        return self.rules.get("transfer_category") or None

    def fallback_category(self, is_expense: bool) -> str:
        """Category assigned when no merchant rule matches. Default: 'uncategorized'."""
        fallbacks = self.rules.get("fallback_categories", {}) or {}
        key = "expense" if is_expense else "income"
        return fallbacks.get(key) or "uncategorized"

    @property
    def _transfer_detection(self) -> dict:
        return self.rules.get("transfer_detection", {}) or {}

    @property
    def same_batch_days(self) -> float:
        return self._transfer_detection.get("same_batch_days", DEFAULT_SAME_BATCH_DAYS)

    @property
    def cross_provider_days(self) -> float:
        return self._transfer_detection.get("cross_provider_days", DEFAULT_CROSS_PROVIDER_DAYS)

    @property
    def transfer_markers(self) -> dict[str, str]:
        """Map import source → provider-specific internal transfer marker."""
        markers = self._transfer_detection.get("markers")
        if markers is None:
            return dict(DEFAULT_MARKERS)
        return {source: marker for source, marker in markers.items() if marker}

    def marker_for(self, source: str) -> str | None:
        return self.transfer_markers.get(source)
