"""
MangaMotion Core Module

Contains core systems including configuration, constants, exceptions, logging,
retry utilities and artifact reference helpers.
"""

from .config import Settings, get_settings
from .constants import *
from .exceptions import *
from .logging_config import setup_logging, get_logger, LogLevel

__all__ = [
    'Settings',
    'get_settings',
    'setup_logging',
    'get_logger',
    'LogLevel',
]
