"""YAML configuration file loading."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from census.forkid import KNOWN_CHAINS, ChainConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".census"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_DB_PATH = str(DEFAULT_CONFIG_DIR / "census.db")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class CensusConfig:
    """Top-level configuration for the census tool.

    Attributes:
        db_path: Path to the SQLite database file.
        maxmind_city_db: Path to GeoLite2-City.mmdb, or None to skip
            geolocation.
        log_level: Logging level name used by the CLI.
        chains: Extra chain definitions, classified after the built-in ones.
    """

    db_path: str = DEFAULT_DB_PATH
    maxmind_city_db: str | None = None
    log_level: str = "INFO"
    chains: list[ChainConfig] = field(default_factory=list)

    @property
    def registry(self) -> tuple[ChainConfig, ...]:
        """Built-in chains followed by the configured extra chains."""
        return KNOWN_CHAINS + tuple(self.chains)


# Keys in the YAML file that map to CensusConfig fields.
_YAML_KEY_TO_FIELD: dict[str, str] = {
    "db_path": "db_path",
    "maxmind_city_db": "maxmind_city_db",
    "log_level": "log_level",
    "chains": "chains",
}


def load_config(path: Path | str | None = None) -> CensusConfig:
    """Load configuration from a YAML file.

    Args:
        path: Explicit path to a YAML config file.  If ``None``, the
            default location (``~/.census/config.yaml``) is tried.  If the
            default file doesn't exist, a ``CensusConfig`` with all defaults
            is returned silently.

    Returns:
        A populated ``CensusConfig`` instance.

    Raises:
        FileNotFoundError: If an explicit *path* was given but doesn't exist.
        ConfigError: If the file contains invalid YAML, has an unexpected
            top-level structure, or holds invalid values.
    """
    resolved = _resolve_path(path)

    if resolved is None:
        logger.debug("No config file found; using defaults")
        return CensusConfig()

    logger.debug("Loading config from %s", resolved)
    text = resolved.read_text(encoding="utf-8")

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {resolved}: {exc}") from exc

    if raw is None:
        return CensusConfig()

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Expected a YAML mapping at the top level in {resolved}, "
            f"got {type(raw).__name__}"
        )

    return _build_config(raw, source=resolved)


class ConfigError(Exception):
    """Raised when a configuration file is malformed or unreadable."""


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _resolve_path(path: Path | str | None) -> Path | None:
    """Return a concrete ``Path`` to read, or ``None`` if nothing to read.

    Raises:
        FileNotFoundError: If the caller supplied an explicit path that
            doesn't exist on disk.
    """
    if path is not None:
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def _build_config(raw: dict, source: Path) -> CensusConfig:
    """Map raw YAML dict to a ``CensusConfig``, ignoring unknown keys."""
    kwargs: dict[str, object] = {}

    for yaml_key, field_name in _YAML_KEY_TO_FIELD.items():
        if yaml_key in raw:
            kwargs[field_name] = raw[yaml_key]

    unknown = set(raw) - set(_YAML_KEY_TO_FIELD)
    if unknown:
        logger.warning(
            "Ignoring unknown config keys in %s: %s",
            source,
            ", ".join(sorted(unknown)),
        )

    level = str(kwargs.get("log_level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(
            f"Invalid log_level {level!r} in {source}; "
            f"expected one of {', '.join(_LOG_LEVELS)}"
        )
    kwargs["log_level"] = level

    kwargs["chains"] = _build_chains(kwargs.get("chains"), source)

    return CensusConfig(**kwargs)


def _build_chains(raw: object, source: Path) -> list[ChainConfig]:
    """Parse the optional ``chains`` list into ``ChainConfig`` objects."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"'chains' in {source} must be a list")

    chains = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ConfigError(f"Chain entries in {source} must be mappings")
        try:
            chains.append(ChainConfig.from_dict(entry))
        except ValueError as exc:
            raise ConfigError(f"{exc} (in {source})") from exc
    return chains
