"""Controller configuration."""

from registry_operator.config.loader import read_and_parse_controller_config
from registry_operator.config.schema import GenericOperatorConfig, OperatorSettings, ServingInfo

__all__ = [
    "GenericOperatorConfig",
    "OperatorSettings",
    "ServingInfo",
    "read_and_parse_controller_config",
]
