"""
Configuration loading and the active configuration snapshot.

The configuration document (JSON, or YAML for ``.yaml``/``.yml`` files)
is validated into a WebhookConfig and paired with a RuleMatcher built
from its rules. Handlers read the active snapshot with ``current()``; a
reload builds a complete new snapshot and swaps the reference, so every
request sees either the old or the new rule set in full.
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import ValidationError

from giteahook.models.rule import WebhookConfig
from giteahook.services.rule_matcher import RuleMatcher
from giteahook.utils.logging import get_logger

logger = get_logger(__name__)

YAML_SUFFIXES = {".yaml", ".yml"}


class ConfigLoadError(Exception):
    """Raised when the configuration document cannot be read or validated."""
    pass


@dataclass(frozen=True)
class ConfigSnapshot:
    """An immutable configuration together with its compiled rules."""

    config: WebhookConfig
    matcher: RuleMatcher
    source: Optional[str] = None

    @classmethod
    def from_config(cls, config: WebhookConfig, source: Optional[str] = None) -> "ConfigSnapshot":
        return cls(config=config, matcher=RuleMatcher(config.repositories), source=source)


def load_config(config_file: Union[str, Path]) -> WebhookConfig:
    """
    Read and validate a configuration document.

    Args:
        config_file: Path to the JSON or YAML document

    Returns:
        Validated WebhookConfig

    Raises:
        ConfigLoadError: If the file cannot be read or is not a valid configuration
    """
    path = Path(config_file)

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigLoadError(f"cannot read config file {path}: {e}") from e

    try:
        if path.suffix.lower() in YAML_SUFFIXES:
            return WebhookConfig.model_validate(yaml.safe_load(text) or {})
        return WebhookConfig.model_validate_json(text)
    except (yaml.YAMLError, ValidationError) as e:
        raise ConfigLoadError(f"invalid config file {path}: {e}") from e


class ConfigStore:
    """
    Holder of the active configuration snapshot.

    ``current()`` is safe to call from any number of concurrent handlers.
    ``swap()`` and ``reload()`` replace the snapshot as a whole.
    """

    def __init__(self, config_file: Union[str, Path], snapshot: Optional[ConfigSnapshot] = None):
        self._config_file = Path(config_file)
        self._lock = threading.Lock()
        self._snapshot = snapshot

    @classmethod
    def from_file(cls, config_file: Union[str, Path]) -> "ConfigStore":
        """
        Create a store and load its first snapshot.

        Raises:
            ConfigLoadError: If the initial configuration is unusable
        """
        store = cls(config_file)
        store.swap(ConfigSnapshot.from_config(load_config(config_file), source=str(config_file)))
        return store

    @property
    def config_file(self) -> Path:
        return self._config_file

    def current(self) -> ConfigSnapshot:
        """Return the active snapshot."""
        snapshot = self._snapshot
        if snapshot is None:
            raise RuntimeError("Configuration not loaded. Call reload() or swap() first.")
        return snapshot

    def swap(self, snapshot: ConfigSnapshot) -> Optional[ConfigSnapshot]:
        """Install ``snapshot`` and return the one it replaced."""
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
        return previous

    def reload(self) -> bool:
        """
        Re-read the configuration file and swap it in.

        A failed reload is logged and leaves the active snapshot untouched.

        Returns:
            True if the new configuration is active
        """
        try:
            config = load_config(self.config_file)
        except ConfigLoadError as e:
            logger.error(f"config reload of {self.config_file} failed, keeping previous configuration: {e}")
            return False

        previous = self.swap(ConfigSnapshot.from_config(config, source=str(self.config_file)))

        if previous is not None:
            old = previous.config
            if (old.address, old.port, old.logfile) != (config.address, config.port, config.logfile):
                logger.warning("Address, Port and Logfile changes take effect after a restart")

        logger.info(
            "config reloaded",
            extra={"repositories": len(config.repositories)}
        )
        return True
