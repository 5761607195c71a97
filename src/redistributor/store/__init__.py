"""Configuration store backends."""

from .base import ConfigurationStore
from .memory import InMemoryConfigurationStore
from .sqlite import SQLiteConfigurationStore

__all__ = [
    "ConfigurationStore",
    "InMemoryConfigurationStore",
    "SQLiteConfigurationStore",
]
