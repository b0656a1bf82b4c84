"""Unified settings — init kwargs, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — passed by the embedding application
  2. Env vars     — ``FUNCTIONAL_MODELS_*`` prefix
  3. TOML file    — ``functional_models.toml`` discovered via walk-up
  4. Code defaults

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource` that
reuses the ``find_config`` walk-up discovery from
:mod:`functional_models.config.discovery`.
"""

from __future__ import annotations

import functools
import threading
import tomllib
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from functional_models.config.discovery import find_config
from functional_models.config.logging import configure_logging


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from a ``functional_models.toml`` file."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise ValueError(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        """Return the full TOML data dict for Pydantic to merge."""
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class FunctionalModelsSettings(BaseSettings):
    """Process-wide settings for models, logging, and telemetry.

    Attributes:
        primary_key_name: Primary key used when a model definition
            does not name one.
        verbose: DEBUG logging for the ``functional_models`` logger.
        log_json: Render log lines as JSON.
        telemetry: Record and log timing spans for ORM operations.
        config_path: The TOML file the settings were read from, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "FUNCTIONAL_MODELS_",
    }

    primary_key_name: str = "id"
    verbose: bool = False
    log_json: bool = False
    telemetry: bool = False
    config_path: Path | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def load(
        cls,
        *,
        config_path: str | Path | None = None,
        start: Path | None = None,
        **overrides: Any,
    ) -> FunctionalModelsSettings:
        """Construct settings, discovering ``functional_models.toml``.

        An explicit *config_path* wins over walk-up discovery from *start*.
        *overrides* take the highest priority.
        """
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(start)

        _tls.toml_path = toml_path
        try:
            return cls(config_path=toml_path, **overrides)
        finally:
            _tls.toml_path = None


@functools.cache
def get_settings() -> FunctionalModelsSettings:
    """Return the cached process-wide settings."""
    return FunctionalModelsSettings.load()


def configure(settings: FunctionalModelsSettings | None = None) -> FunctionalModelsSettings:
    """Apply logging and telemetry settings. Returns the settings used."""
    from functional_models.telemetry import disable_telemetry, enable_telemetry

    resolved = settings or get_settings()
    configure_logging(verbose=resolved.verbose, log_json=resolved.log_json)
    if resolved.telemetry:
        enable_telemetry()
    else:
        disable_telemetry()
    return resolved
