"""Configuration models and parser for codexbridge.yaml."""

from codexbridge.config.models import BridgeConfig, ReasoningEffort, TurnOptions
from codexbridge.config.parser import ConfigError, load_config

__all__ = [
    "BridgeConfig",
    "ConfigError",
    "ReasoningEffort",
    "TurnOptions",
    "load_config",
]
