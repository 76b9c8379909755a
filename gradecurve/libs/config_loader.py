"""Configuration loading utilities for gradecurve."""

import copy
import os
from typing import Any
import logging

import yaml

LOG = logging.getLogger(__name__)

ConfigType = dict[str, Any]


def merge_configs(orig_conf: Any, new_conf: Any) -> Any:
    """Recursively merge configuration dictionaries.

    Mappings are merged key by key; any other value in new_conf replaces the
    original value outright.
    """
    if isinstance(orig_conf, dict) and isinstance(new_conf, dict):
        result = copy.deepcopy(orig_conf)
        for k, v in new_conf.items():
            if k in orig_conf:
                result[k] = merge_configs(orig_conf[k], v)
            else:
                result[k] = copy.deepcopy(v)
        return result
    return copy.deepcopy(new_conf)


def load_configs(*path_configs: str) -> ConfigType:
    """Load and merge YAML configuration files.

    Args:
        *path_configs: Paths to YAML configuration files, in override order

    Returns:
        Merged configuration dictionary

    Raises:
        TypeError: If a config file doesn't contain a dict
        ValueError: If no configs are loaded
    """
    result = {}
    for path in [str(p) for p in path_configs]:
        LOG.info("loading config from %s", path)
        if os.path.isfile(path):
            with open(path, "r", encoding="utf-8") as f:
                c = yaml.safe_load(f)
                if not isinstance(c, dict):
                    raise TypeError(f"YAML config file {path} must be a dict")
                result = merge_configs(result, c)
        else:
            LOG.warning("Skipping missing config file %s", repr(path))
    if not result:
        raise ValueError("No configs loaded")
    return result


def default_config_paths() -> list[str]:
    """Return the default and local config file paths.

    The files live in the config/ directory at the project root:
    1. config/default.yaml (base configuration)
    2. config/local.yaml (local overrides, not committed to git)
    """
    current_dir = os.path.dirname(os.path.abspath(__file__))
    # Go up two levels: libs -> gradecurve -> project_root
    project_root = os.path.dirname(os.path.dirname(current_dir))
    config_dir = os.path.join(project_root, "config")
    return [
        os.path.join(config_dir, "default.yaml"),
        os.path.join(config_dir, "local.yaml"),
    ]


def load_default_configs() -> ConfigType:
    """Load default and local configuration files.

    Returns:
        Merged configuration from default.yaml and local.yaml
    """
    return load_configs(*default_config_paths())


def get_config(key: str, config: ConfigType = None, default: Any = KeyError) -> Any:
    """Get a configuration value by dot-separated key.

    Args:
        key: Dot-separated path to config value (e.g., "grading.exam_glob")
        config: Configuration dict (if None, loads default configs)
        default: Value returned when the key is absent; by default a
            KeyError is raised instead

    Returns:
        Configuration value

    Raises:
        KeyError: If key not found in configuration and no default given
    """
    if config is None:
        config = load_default_configs()

    keys = key.split('.')
    value = config
    for i, k in enumerate(keys):
        if not isinstance(value, dict):
            if default is not KeyError:
                return default
            raise KeyError(f"Cannot access {k} in non-dict value at {'.'.join(keys[:i])}")
        if k not in value:
            if default is not KeyError:
                return default
            raise KeyError(f"Key {key} not found in configuration")
        value = value[k]
    return value
