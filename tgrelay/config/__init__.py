"""Configuration module for tgrelay."""

from tgrelay.config.loader import get_config_path, load_config
from tgrelay.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
