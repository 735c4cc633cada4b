"""Configuration schema and loaders."""

from .loader import config_from_dict, load_config
from .schema import ActionWeights, Config, Pool, ProtocolConfig, Simulation

__all__ = [
    "ActionWeights",
    "Config",
    "Pool",
    "ProtocolConfig",
    "Simulation",
    "config_from_dict",
    "load_config",
]
