"""Chat configuration management."""

import copy
import logging
from pathlib import Path
from typing import Any

import yaml
from knack.util import CLIError

from jmeter_copilot.ai.transport import DEFAULT_MODEL, CopilotModel, SystemMessageMode
from jmeter_copilot.chat.history import DEFAULT_MAX_MESSAGES

logger = logging.getLogger(__name__)

_ALLOWED_SYSTEM_MODES = frozenset(m.value for m in SystemMessageMode)

DEFAULT_CONFIG = {
    "ai": {
        "model": DEFAULT_MODEL.value,
        "streaming": True,
        "system_message_mode": SystemMessageMode.APPEND.value,
        "timeout": 300,
    },
    "chat": {
        "max_messages": DEFAULT_MAX_MESSAGES,
    },
    "output": {
        "dir": "",
    },
}


class ChatConfig:
    """Manages ``jmeter-copilot.yaml``.

    Provides dot-notation get/set for nested values.  A missing file is
    not an error: the defaults apply until :meth:`save` writes one.
    """

    CONFIG_FILENAME = "jmeter-copilot.yaml"

    def __init__(self, project_dir: str | Path = "."):
        self.project_dir = Path(project_dir)
        self.config_path = self.project_dir / self.CONFIG_FILENAME
        self._config: dict = copy.deepcopy(DEFAULT_CONFIG)

    # ------------------------------------------------------------------ #
    #  Persistence                                                        #
    # ------------------------------------------------------------------ #

    def load(self) -> dict:
        """Load configuration, overlaying file values onto the defaults.

        Raises:
            CLIError if the file exists but is not valid YAML.
        """
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        if not self.config_path.exists():
            logger.debug("No %s found; using defaults", self.config_path)
            return self._config

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise CLIError(f"Invalid configuration file {self.config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise CLIError(f"Invalid configuration file {self.config_path}: expected a mapping")

        self._merge(self._config, data)
        return self._config

    def save(self):
        """Persist the current configuration."""
        self.project_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                self._config,
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )
        logger.debug("Configuration saved to %s", self.config_path)

    def exists(self) -> bool:
        return self.config_path.exists()

    # ------------------------------------------------------------------ #
    #  Access                                                             #
    # ------------------------------------------------------------------ #

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key.

        Examples:
            config.get("ai.model")
            config.get("chat.max_messages")
        """
        current: Any = self._config
        for part in key.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def set(self, key: str, value: Any):
        """Validate and set a value by dot-separated key, then save."""
        value = self._validate_config_value(key, value)

        parts = key.split(".")
        current = self._config
        for part in parts[:-1]:
            if part not in current or not isinstance(current[part], dict):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value

        self.save()

    def to_dict(self) -> dict:
        """Return a deep copy of the full config dict."""
        return copy.deepcopy(self._config)

    # ------------------------------------------------------------------ #
    #  Validation                                                         #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_config_value(key: str, value: Any) -> Any:
        """Enforce constraints at set time; returns the normalised value.

        Rules:
          - ai.model must be a known Copilot model.
          - ai.system_message_mode must be append or replace.
          - chat.max_messages and ai.timeout must be positive integers.
        """
        if key == "ai.model":
            try:
                return CopilotModel.from_value(value).value
            except ValueError as exc:
                raise CLIError(str(exc)) from exc

        if key == "ai.system_message_mode":
            mode = str(value).lower().strip()
            if mode not in _ALLOWED_SYSTEM_MODES:
                raise CLIError(
                    f"Unknown system message mode: '{value}'.\n"
                    f"Supported modes: {', '.join(sorted(_ALLOWED_SYSTEM_MODES))}"
                )
            return mode

        if key in ("chat.max_messages", "ai.timeout"):
            try:
                number = int(value)
            except (TypeError, ValueError):
                number = 0
            if number < 1 or isinstance(value, bool):
                raise CLIError(f"'{key}' must be a positive integer, got '{value}'.")
            return number

        if key == "ai.streaming" and isinstance(value, str):
            return value.lower().strip() in ("true", "yes", "1", "on")

        return value

    @staticmethod
    def _merge(base: dict, overlay: dict):
        """Recursively merge *overlay* into *base*."""
        for key, value in overlay.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                ChatConfig._merge(base[key], value)
            else:
                base[key] = value
