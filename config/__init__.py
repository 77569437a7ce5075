"""Configuration management for artisync."""

from .loader import ConfigLoader, load_config
from .schema import ArtisyncSettings

__all__ = ["ArtisyncSettings", "ConfigLoader", "load_config"]
