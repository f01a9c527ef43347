"""YAML configuration loader for SpendVolt.

Loads the config files from the config/ directory:
  settings.yaml, categories.yaml, profile.yaml
"""

from pathlib import Path

import yaml

from spendvolt.codec import profile_from_dict
from spendvolt.models import FALLBACK_ICON, UserCategory, UserProfile, ValidationError

DEFAULT_TIMEOUT = 15.0


class Config:
    """Loads and provides access to all YAML configuration files."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._settings: dict | None = None
        self._categories: list[UserCategory] | None = None
        self._profile: UserProfile | None = None

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
    def settings(self) -> dict:
        if self._settings is None:
            self._settings = self._load("settings.yaml")
        return self._settings

    @property
    def api_base_url(self) -> str:
        url = self.settings.get("api", {}).get("base_url")
        if not url:
            raise ValueError("settings.yaml is missing api.base_url")
        return url

    @property
    def timeout(self) -> float:
        return float(self.settings.get("api", {}).get("timeout", DEFAULT_TIMEOUT))

    @property
    def payment_apps(self) -> list[str]:
        """Payment apps offered after a scan, in display order."""
        return self.settings.get("payment_apps", [])

    @property
    def default_categories(self) -> list[UserCategory]:
        """Starter categories used offline and after logout."""
        if self._categories is None:
            data = self._load("categories.yaml")
            entries = data.get("categories", []) if isinstance(data, dict) else data
            categories = []
            for entry in entries:
                name = entry.get("name")
                if not name:
                    raise ValueError(f"Category entry without a name: {entry}")
                categories.append(UserCategory(name=name, icon=entry.get("icon", FALLBACK_ICON)))
            self._categories = categories
        return self._categories

    @property
    def default_profile(self) -> UserProfile:
        if self._profile is None:
            data = self._load("profile.yaml")
            try:
                profile = profile_from_dict(data.get("profile", data))
                profile.validate()
            except (ValueError, ValidationError) as e:
                raise ValueError(f"Invalid profile.yaml: {e}") from e
            self._profile = profile
        return self._profile
