"""
Configuration for docweave.

All tunable parameters in one place. Loaded from:
1. Defaults (this file)
2. Config file (~/.config/docweave/config.toml) if exists
3. Environment variables (DOCWEAVE_*) override file
4. CLI flags override everything
"""

from __future__ import annotations

import contextlib
import logging
import os
import tomllib  # stdlib in 3.11+
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class LoaderConfig:
    """Include resolution settings."""
    lang: str = "en"  # includes with another `lang` are dropped, `@lang` in src expands to this
    include_tag: str = "include"


@dataclass
class FetchConfig:
    """Fragment fetching settings."""
    timeout: float = 30.0
    user_agent: str = "docweave/0.1"
    structured_extensions: list[str] = field(default_factory=lambda: [".xml", ".smx"])


@dataclass
class ProcessingConfig:
    """Content processor settings."""
    max_iterations: int = 100  # nodes handled per event-loop tick before yielding


@dataclass
class Config:
    """Root config with all settings."""
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)


def get_config_path() -> Path:
    """Get config file path, respecting XDG."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "docweave" / "config.toml"
    return Path.home() / ".config" / "docweave" / "config.toml"


def load_config() -> Config:
    """Load config from file if exists, else return defaults."""
    config = Config()
    path = get_config_path()

    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
            config = _apply_toml(config, data)
        except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError) as e:
            logger.warning("Ignoring config file %s: %s", path, e)
            config = Config()

    # env var overrides
    config = _apply_env(config)

    return config


def _apply_toml(config: Config, data: dict) -> Config:
    """Apply toml data to config."""
    if "loader" in data:
        ld = data["loader"]
        if "lang" in ld:
            config.loader.lang = str(ld["lang"])
        if "include_tag" in ld:
            config.loader.include_tag = str(ld["include_tag"])

    if "fetch" in data:
        f = data["fetch"]
        if "timeout" in f:
            config.fetch.timeout = float(f["timeout"])
        if "user_agent" in f:
            config.fetch.user_agent = str(f["user_agent"])
        if "structured_extensions" in f:
            config.fetch.structured_extensions = [str(ext) for ext in f["structured_extensions"]]

    if "processing" in data:
        p = data["processing"]
        if "max_iterations" in p:
            config.processing.max_iterations = int(p["max_iterations"])

    return config


def _apply_env(config: Config) -> Config:
    """Apply environment variable overrides."""
    env_map: dict[str, tuple[str, str, type]] = {
        "DOCWEAVE_LANG": ("loader", "lang", str),
        "DOCWEAVE_INCLUDE_TAG": ("loader", "include_tag", str),
        "DOCWEAVE_FETCH_TIMEOUT": ("fetch", "timeout", float),
        "DOCWEAVE_USER_AGENT": ("fetch", "user_agent", str),
        "DOCWEAVE_MAX_ITERATIONS": ("processing", "max_iterations", int),
    }

    for env_key, (section, attr, conv) in env_map.items():
        val = os.environ.get(env_key)
        if val is not None:
            with contextlib.suppress(ValueError):
                setattr(getattr(config, section), attr, conv(val))

    return config


# Module-level config instance, loaded on first use
_config: Config | None = None


def get_config() -> Config:
    """Get the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() reloads it."""
    global _config
    _config = None
