"""Core infrastructure: settings, logging and observability."""

from .settings import RedistributorSettings, SettingsManager
from .observability import EndpointUsage, EventLogger, UsageTracker

__all__ = [
    "RedistributorSettings",
    "SettingsManager",
    "EndpointUsage",
    "EventLogger",
    "UsageTracker",
]
