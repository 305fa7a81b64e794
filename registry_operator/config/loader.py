"""Controller config file loading."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from registry_operator.config.schema import GenericOperatorConfig
from registry_operator.errors import ConfigurationError


def read_and_parse_controller_config(path: str | Path | None) -> GenericOperatorConfig:
    """Read and parse the controller config file.

    An empty path yields the built-in default config (bind address
    ``0.0.0.0:60000``). A file that cannot be read or parsed is an error;
    it never falls back to defaults.

    Raises:
        ConfigurationError: The file is unreadable or not a valid config.
    """
    if not path:
        return GenericOperatorConfig.default()

    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"failed to read config file: {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"failed to unmarshal config content: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"failed to unmarshal config content: expected a mapping, got {type(data).__name__}"
        )

    try:
        return GenericOperatorConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"failed to unmarshal config content: {e}") from e
