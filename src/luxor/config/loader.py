"""Load protocol, pool and simulation settings from YAML.

The bundled ``defaults.yaml`` describes a mainnet-like launch: 1000 LXR per
SOL, a 50-purchase early-bird tier and a 5% buyback fee to the treasury.
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .schema import Config

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_config(yaml_path: Union[str, Path, None] = None) -> Config:
    """
    Load an engine configuration.

    Args:
        yaml_path: YAML file with ``protocol``, ``pool`` and ``simulation``
            sections (defaults to the bundled launch parameters)

    Returns:
        Validated Config

    Raises:
        pydantic.ValidationError: If a section is missing or out of bounds
    """
    path = Path(yaml_path) if yaml_path is not None else DEFAULTS_PATH
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}
    return config_from_dict(data)


def config_from_dict(data: Dict[str, Any]) -> Config:
    """Validate an already-parsed mapping (e.g. a modified ``Config.to_dict()``)."""
    return Config.from_dict(data)
