"""Parser for pulsarkit settings files."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from pulsarkit.core.models import Settings

SETTINGS_FILES = ("pulsarkit.yml", "pulsarkit.yaml")

# Environment variables consulted when the settings file leaves a value out
ENV_FALLBACKS = {
    "service_url": "PULSAR_SERVICE_URL",
    "admin_url": "PULSAR_ADMIN_URL",
    "container_service_url": "PULSAR_CONTAINER_SERVICE_URL",
    "container_admin_url": "PULSAR_CONTAINER_ADMIN_URL",
    "token": "PULSAR_TOKEN",
}


class EnvVarError(Exception):
    """Error when environment variable is not set."""

    pass


class ParseError(Exception):
    """Error during parsing."""

    pass


class SettingsParser:
    """Loads :class:`Settings` from YAML, ``${VAR}`` references and the environment."""

    ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

    def __init__(self, base_path: Optional[Path] = None) -> None:
        """Initialize parser with the directory holding the settings file."""
        self.base_path = (base_path or Path.cwd()).resolve()

        # Load .env file if present
        env_file = self.base_path / ".env"
        if env_file.exists():
            load_dotenv(env_file)

    def parse(self, settings_file: Optional[Path] = None) -> Settings:
        """Parse settings; a missing settings file yields environment defaults."""
        path = settings_file or self._find_settings_file()
        if settings_file is not None and not settings_file.exists():
            raise ParseError(f"Settings file '{settings_file}' not found")

        data = self._load_yaml(path) if path else {}
        data = self._resolve_env_vars(data)

        pulsar = data.setdefault("pulsar", {}) or {}
        data["pulsar"] = pulsar
        for key, env_name in ENV_FALLBACKS.items():
            if key not in pulsar and os.environ.get(env_name):
                pulsar[key] = os.environ[env_name]

        try:
            return Settings.model_validate(data)
        except ValidationError as e:
            raise ParseError(f"Invalid settings: {e}")

    def _find_settings_file(self) -> Path | None:
        for name in SETTINGS_FILES:
            candidate = self.base_path / name
            if candidate.exists():
                return candidate
        return None

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        """Load and parse a YAML file."""
        try:
            with open(path) as f:
                content = f.read()
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ParseError(f"YAML parse error in '{path}': {e}")
        if not isinstance(data, dict):
            raise ParseError(f"Settings file '{path}' must contain a mapping")
        return data

    def _resolve_env_vars(self, value: Any) -> Any:
        """Recursively resolve environment variables in a value."""
        if isinstance(value, str):
            return self._resolve_env_var_string(value)
        elif isinstance(value, dict):
            return {k: self._resolve_env_vars(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [self._resolve_env_vars(v) for v in value]
        return value

    def _resolve_env_var_string(self, value: str) -> str:
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise EnvVarError(f"Environment variable '{var_name}' not set")
            return env_value

        return self.ENV_VAR_PATTERN.sub(replace, value)


def load_settings(settings_file: Optional[Path] = None) -> Settings:
    """Load settings from ``settings_file`` or the working directory."""
    base = settings_file.parent if settings_file else None
    return SettingsParser(base).parse(settings_file)
