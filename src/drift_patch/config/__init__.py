"""
Configuration module for drift patch.
"""
from .constants import *
from .logger import configure_logging, get_logger, logger
from .settings import DriftConfig, SafetyWeights, Settings, ValidationConfig, settings

__all__ = [
    "settings",
    "Settings",
    "DriftConfig",
    "ValidationConfig",
    "SafetyWeights",
    "get_logger",
    "configure_logging",
    "logger",
]
